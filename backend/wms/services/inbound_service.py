# Overview: Inbound processor; confirms registered units into stock and logs the receipt.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ..actor import Actor
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..identifiers import sanitize_code, split_codes
from ..models import LogEntry, Product, StockUnit
from ..models.ledger import (
    LOG_TYPE_ADJUST,
    LOG_TYPE_IN,
    ORIGIN_MIGRATION,
    ORIGIN_NORMAL,
    SYSTEM_MIGRATION_ID,
)
from ..models.stock import UNIT_STATUS_CREATED, UNIT_STATUS_IN_STOCK
from ..time_utils import ONE_MS, utcnow
from .balance_service import recalculate_products
from .concurrency import lock_for_update, run_atomic
from .ledger_service import append_log_entries, build_log_entry

DEFAULT_INBOUND_NOTE = "Goods receipt"


@dataclass
class InboundResult:
    units: list[StockUnit] = field(default_factory=list)
    entries: list[LogEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "units": [u.to_dict() for u in self.units],
            "entries": [e.to_dict() for e in self.entries],
        }


def _clean_submission(codes) -> list[str]:
    cleaned = [sanitize_code(c) for c in split_codes(codes)]
    cleaned = [c for c in cleaned if c]
    if not cleaned:
        raise ValidationError("No unit codes submitted")

    seen, dupes = set(), []
    for code in cleaned:
        if code in seen and code not in dupes:
            dupes.append(code)
        seen.add(code)
    if dupes:
        raise ValidationError("Duplicate unit codes in submission", details={"codes": dupes})
    return cleaned


def process_inbound(
    *,
    codes,
    actor: Actor,
    note: str | None = None,
    is_migration: bool = False,
    unit_notes: dict[str, str] | None = None,
    occurred_at: datetime | None = None,
) -> InboundResult:
    """
    Confirm CREATED units into stock.

    For each unit: status -> IN_STOCK and one IN entry (+quantity).

    MIGRATION: when the goods were already counted in the legacy opening
    balance, each IN is followed 1 ms later by an ADJUST (-quantity,
    stock_item_id=SYSTEM-MIGRATION). The pair nets to exactly zero, so the
    labels become traceable without changing total stock.

    Raises:
        ValidationError: empty or duplicate codes
        NotFoundError: a code matches no unit in CREATED status
    """
    cleaned = _clean_submission(codes)
    notes = {sanitize_code(k): v for k, v in (unit_notes or {}).items()}

    def _op():
        rows = lock_for_update(
            db.session.query(StockUnit).filter(StockUnit.unique_id.in_(cleaned))
        ).all()
        by_id = {u.unique_id: u for u in rows}
        missing = [c for c in cleaned if c not in by_id or by_id[c].status != UNIT_STATUS_CREATED]
        if missing:
            raise NotFoundError(
                "Unit not found or already processed",
                details={"codes": missing},
            )

        now = occurred_at or utcnow()
        result = InboundResult()
        entries = []
        for code in cleaned:
            unit = by_id[code]
            product = db.session.get(Product, unit.product_id)
            product_name = product.name if product else unit.product_name

            unit.status = UNIT_STATUS_IN_STOCK
            if notes.get(code):
                unit.note = notes[code]

            if is_migration:
                in_note = f"Migration: {note or DEFAULT_INBOUND_NOTE}"
            else:
                in_note = note or DEFAULT_INBOUND_NOTE

            entries.append(build_log_entry(
                type=LOG_TYPE_IN,
                product_id=unit.product_id,
                product_name=product_name,
                quantity_change=unit.quantity,
                stock_item_id=unit.unique_id,
                timestamp=now,
                note=in_note,
                user=actor.username,
                origin=ORIGIN_MIGRATION if is_migration else ORIGIN_NORMAL,
            ))
            if is_migration:
                entries.append(build_log_entry(
                    type=LOG_TYPE_ADJUST,
                    product_id=unit.product_id,
                    product_name=product_name,
                    quantity_change=-unit.quantity,
                    stock_item_id=SYSTEM_MIGRATION_ID,
                    timestamp=now + ONE_MS,
                    note=f"Legacy balance converted to label [{unit.unique_id[-6:]}]",
                    user=actor.username,
                    origin=ORIGIN_MIGRATION,
                ))
            result.units.append(unit)

        db.session.flush()
        result.entries = append_log_entries(entries)
        recalculate_products(u.product_id for u in result.units)
        return result

    return run_atomic(_op, action="inbound")
