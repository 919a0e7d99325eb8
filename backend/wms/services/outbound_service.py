# Overview: Outbound processor; all-or-nothing dispatch of stock from units to recipients.

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime

from ..actor import Actor
from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..identifiers import sanitize_code
from ..models import LogEntry, Product, StockUnit
from ..models.ledger import LOG_TYPE_OUT
from ..models.stock import UNIT_STATUS_IN_STOCK, status_for_quantity
from ..time_utils import utcnow
from .balance_service import recalculate_products
from .concurrency import lock_for_update, run_atomic
from .ledger_service import append_log_entries, build_log_entry

DEFAULT_OUTBOUND_NOTE = "Goods dispatch"

SORT_BY_EXPIRY = "expiry"
SORT_BY_ARRIVAL = "arrival"


@dataclass
class OutboundLine:
    unique_id: str
    qty: int
    recipient: str
    note: str | None = None
    # Quantity the client saw; a mismatch means another session got there first
    expected_quantity: int | None = None


def _line_problems(index: int, line: OutboundLine) -> list[dict]:
    problems = []
    if not isinstance(line.qty, int) or isinstance(line.qty, bool) or line.qty <= 0:
        problems.append({"line": index, "unique_id": line.unique_id, "error": "quantity must be greater than 0"})
    if not (line.recipient or "").strip():
        problems.append({"line": index, "unique_id": line.unique_id, "error": "recipient is required"})
    return problems


def process_outbound(lines: list[OutboundLine], actor: Actor, *, occurred_at: datetime | None = None) -> list[LogEntry]:
    """
    Dispatch stock from units.

    Every line is validated before anything is written; one bad line rejects
    the whole batch. Then all unit updates are applied, then all OUT entries
    are appended, then product caches are rebuilt, in one commit.

    Raises:
        ValidationError: bad quantity/recipient, duplicate unit, qty > available
        NotFoundError: unknown unit
        ConflictError: unit not IN_STOCK, or expected_quantity no longer matches
    """
    if not lines:
        raise ValidationError("No outbound lines submitted")

    lines = [replace(line, unique_id=sanitize_code(line.unique_id)) for line in lines]

    problems = []
    seen = set()
    for index, line in enumerate(lines):
        problems.extend(_line_problems(index, line))
        if line.unique_id in seen:
            problems.append({"line": index, "unique_id": line.unique_id, "error": "unit listed more than once"})
        seen.add(line.unique_id)
    if problems:
        raise ValidationError("Outbound batch rejected", details={"lines": problems})

    def _op():
        ids = [line.unique_id for line in lines]
        units = {
            u.unique_id: u
            for u in lock_for_update(
                db.session.query(StockUnit).filter(StockUnit.unique_id.in_(ids))
            ).all()
        }

        missing = [uid for uid in ids if uid not in units]
        if missing:
            raise NotFoundError("Unit not found", details={"codes": missing})

        stale = []
        over = []
        for index, line in enumerate(lines):
            unit = units[line.unique_id]
            if unit.status != UNIT_STATUS_IN_STOCK:
                stale.append({"line": index, "unique_id": unit.unique_id, "status": unit.status})
            elif line.expected_quantity is not None and line.expected_quantity != unit.quantity:
                stale.append({
                    "line": index,
                    "unique_id": unit.unique_id,
                    "expected_quantity": line.expected_quantity,
                    "quantity": unit.quantity,
                })
            elif line.qty > unit.quantity:
                over.append({
                    "line": index,
                    "unique_id": unit.unique_id,
                    "error": f"requested {line.qty} exceeds available {unit.quantity}",
                })
        if stale:
            raise ConflictError("Units changed since they were read", details={"lines": stale})
        if over:
            raise ValidationError("Outbound batch rejected", details={"lines": over})

        now = occurred_at or utcnow()
        for line in lines:
            unit = units[line.unique_id]
            new_qty = unit.quantity - line.qty
            unit.quantity = new_qty
            unit.status = status_for_quantity(new_qty)
        db.session.flush()

        entries = []
        for line in lines:
            unit = units[line.unique_id]
            product = db.session.get(Product, unit.product_id)
            entries.append(build_log_entry(
                type=LOG_TYPE_OUT,
                product_id=unit.product_id,
                product_name=product.name if product else unit.product_name,
                quantity_change=-line.qty,
                stock_item_id=unit.unique_id,
                timestamp=now,
                recipient=line.recipient.strip(),
                note=line.note or DEFAULT_OUTBOUND_NOTE,
                user=actor.username,
            ))
        append_log_entries(entries)
        recalculate_products(u.product_id for u in units.values())
        return entries

    return run_atomic(_op, action="outbound")


def fefo_candidates(product_id: str, basis: str = SORT_BY_EXPIRY) -> list[StockUnit]:
    """
    Units a picker should take from first.

    expiry: earliest expiry first, units without expiry last, then arrival.
    arrival: oldest arrival first.
    """
    if basis not in (SORT_BY_EXPIRY, SORT_BY_ARRIVAL):
        raise ValidationError("basis must be 'expiry' or 'arrival'")

    units = (
        db.session.query(StockUnit)
        .filter(
            StockUnit.product_id == product_id,
            StockUnit.status == UNIT_STATUS_IN_STOCK,
            StockUnit.quantity > 0,
        )
        .all()
    )

    def _arrival(u: StockUnit):
        return (u.arrival_date or date.max, u.created_at, u.id)

    if basis == SORT_BY_EXPIRY:
        return sorted(units, key=lambda u: (u.expiry_date is None, u.expiry_date or date.max) + _arrival(u))
    return sorted(units, key=_arrival)
