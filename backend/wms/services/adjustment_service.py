# Overview: Single-unit corrections and the admin stock-correction panel.

from __future__ import annotations

from datetime import datetime

from ..actor import Actor
from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..identifiers import random_suffix, sanitize_code
from ..models import LogEntry, StockUnit
from ..models.ledger import LOG_TYPE_ADJUST
from ..models.stock import UNIT_STATUS_IN_STOCK, status_for_quantity
from ..time_utils import utcnow
from .balance_service import recalculate_products
from .concurrency import lock_for_update, run_atomic
from .ledger_service import append_log_entries, build_log_entry
from .product_service import get_product

DEFAULT_ADJUST_NOTE = "Stock adjustment (audit)"
ADMIN_CORRECTION_BATCH = "ADMIN-CORRECTION"


def apply_adjustment(
    unit: StockUnit,
    new_qty: int,
    note: str | None,
    actor: Actor,
    *,
    baseline: int | None = None,
    at: datetime | None = None,
) -> LogEntry | None:
    """
    Set a unit's quantity and log the difference as one ADJUST entry.

    `baseline` overrides the quantity the difference is measured from; used
    for synthesized units standing in for stock that had no unit row.

    Does not commit. Returns None when nothing changes.
    """
    if not isinstance(new_qty, int) or isinstance(new_qty, bool):
        raise ValidationError("new quantity must be an integer")
    if new_qty < 0:
        raise ValidationError("Unit quantity cannot be negative")

    start = unit.quantity if baseline is None else baseline
    diff = new_qty - start
    if diff == 0:
        return None

    if unit.id is None:
        db.session.add(unit)
    unit.quantity = new_qty
    unit.status = status_for_quantity(new_qty)
    db.session.flush()

    entry = build_log_entry(
        type=LOG_TYPE_ADJUST,
        product_id=unit.product_id,
        product_name=unit.product_name,
        quantity_change=diff,
        stock_item_id=unit.unique_id,
        timestamp=at or utcnow(),
        note=note or DEFAULT_ADJUST_NOTE,
        user=actor.username,
    )
    append_log_entries([entry])
    return entry


def synthesize_unit(product, *, prefix: str, batch_code: str, supplier: str, quantity: int) -> StockUnit:
    """A stand-in unit for stock that exists in the balance but has no labelled unit."""
    return StockUnit(
        unique_id=f"{prefix}-{product.id}-{random_suffix(4)}",
        product_id=product.id,
        product_name=product.name,
        batch_code=batch_code,
        arrival_date=utcnow().date(),
        supplier=supplier,
        status=UNIT_STATUS_IN_STOCK,
        quantity=max(quantity, 0),
    )


def adjust_unit(unique_id: str, new_qty: int, note: str | None, actor: Actor) -> LogEntry | None:
    """Manual correction of one unit, committed on its own."""
    if not actor.is_admin:
        raise PermissionDeniedError("Only an admin can set a unit quantity directly")

    def _op():
        unit = lock_for_update(
            db.session.query(StockUnit).filter_by(unique_id=sanitize_code(unique_id))
        ).first()
        if unit is None:
            raise NotFoundError(f"Unit {unique_id} not found")
        entry = apply_adjustment(unit, new_qty, note, actor)
        if entry is not None:
            recalculate_products([unit.product_id])
        return entry

    return run_atomic(_op, action="adjustment")


def admin_correct_product(
    product_id: str,
    *,
    delta: int,
    note: str | None,
    actor: Actor,
    safety_stock: int | None = None,
) -> LogEntry | None:
    """
    Admin panel correction: shift a product's stock by `delta` and/or set its
    safety stock.

    The delta lands on the oldest IN_STOCK unit. Without one, a unit holding
    the unlabelled balance (stock_today) is synthesized and corrected.
    A reason is mandatory whenever stock changes.
    """
    if not actor.is_admin:
        raise PermissionDeniedError("Only an admin can correct stock directly")
    if not isinstance(delta, int) or isinstance(delta, bool):
        raise ValidationError("delta must be an integer")
    if delta != 0 and not (note or "").strip():
        raise ValidationError("A reason is required for stock corrections")
    if safety_stock is not None and safety_stock < 0:
        raise ValidationError("safety_stock cannot be negative")

    def _op():
        product = get_product(product_id)
        if safety_stock is not None:
            product.safety_stock = safety_stock
        if delta == 0:
            return None

        unit = lock_for_update(
            db.session.query(StockUnit)
            .filter_by(product_id=product.id, status=UNIT_STATUS_IN_STOCK)
            .order_by(StockUnit.created_at.asc(), StockUnit.id.asc())
        ).first()
        if unit is not None:
            baseline = unit.quantity
        else:
            baseline = product.stock_today or 0
            unit = synthesize_unit(
                product,
                prefix="CORR",
                batch_code=ADMIN_CORRECTION_BATCH,
                supplier="SYSTEM",
                quantity=baseline,
            )

        new_qty = baseline + delta
        if new_qty < 0:
            raise ValidationError(
                f"Correction would leave {new_qty} on unit {unit.unique_id}",
                details={"available": baseline, "delta": delta},
            )
        entry = apply_adjustment(unit, new_qty, f"[ADMIN FIX] {note.strip()}", actor, baseline=baseline)
        recalculate_products([product.id])
        return entry

    return run_atomic(_op, action="admin correction")
