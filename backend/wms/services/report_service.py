# Overview: Read-only report projections folded from the movement log.

from __future__ import annotations

from datetime import date, timedelta

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..identifiers import natural_key, sanitize_code
from ..models import LogEntry, Product, StockUnit
from ..models.ledger import LOG_TYPE_IN, LOG_TYPE_OUT, LOG_TYPES
from ..models.stock import UNIT_STATUS_IN_STOCK
from ..time_utils import day_window, end_of_day, start_of_day, to_iso_date
from .balance_service import fold_range, running_balances
from .ledger_service import (
    all_logs,
    group_logs_by_product,
    is_migration_entry,
    logs_for_product,
    logs_for_unit,
)
from .product_service import get_product
from .registration_service import get_unit

LEGACY_BATCH = "LEGACY"


def _check_window(start: date, end: date) -> None:
    if start > end:
        raise ValidationError("start date must not be after end date")


def stock_card(product_id: str, start: date, end: date) -> dict:
    """
    Movement card of one product for [start, end] (whole days).

    The running balance starts from initial_stock and walks every entry in
    order; rows before the window only feed the opening balance. Migration
    pairs are left out; they net to zero.
    """
    _check_window(start, end)
    product = get_product(product_id)
    start_dt, end_dt = day_window(start, end)

    entries = [e for e in logs_for_product(product) if not is_migration_entry(e)]
    opening = product.initial_stock or 0
    closing = opening
    rows = []
    for entry, balance in running_balances(product.initial_stock, entries):
        if entry.timestamp < start_dt:
            opening = balance
            closing = balance
        elif entry.timestamp < end_dt:
            rows.append({**entry.to_dict(), "balance_after": balance})
            closing = balance

    return {
        "product": product.to_dict(),
        "start": start.isoformat(),
        "end": end.isoformat(),
        "opening_balance": opening,
        "mutations": rows,
        "closing_balance": closing,
    }


def movements(
    start: date,
    end: date,
    *,
    search: str | None = None,
    type: str | None = None,
) -> list[dict]:
    """The 'all movements' history: newest first, migration rows hidden."""
    _check_window(start, end)
    if type and type not in LOG_TYPES:
        raise ValidationError(f"type must be one of {', '.join(LOG_TYPES)}")
    start_dt, end_dt = day_window(start, end)
    needle = (search or "").strip().lower()

    rows = []
    for entry in reversed(all_logs(since=start_dt, until=end_dt)):
        if is_migration_entry(entry):
            continue
        if type and entry.type != type:
            continue
        if needle and not any(
            needle in (value or "").lower()
            for value in (entry.product_name, entry.recipient, entry.user)
        ):
            continue
        rows.append(entry.to_dict())
    return rows


def recap(start: date, end: date) -> list[dict]:
    """Per-product opening / in / out / closing for the window, in natural id order."""
    _check_window(start, end)
    start_dt, end_dt = day_window(start, end)

    products = sorted(db.session.query(Product).all(), key=lambda p: natural_key(p.id))
    grouped = group_logs_by_product(products, all_logs(until=end_dt))

    rows = []
    for product in products:
        balance = fold_range(product.initial_stock, grouped[product.id], start_dt, end_dt)
        rows.append({
            "code": product.id,
            "name": product.name,
            "uom": product.unit,
            "opening_stock": balance.opening,
            "in_range": balance.in_sum,
            "out_range": balance.out_sum,
            "stock_end": balance.closing,
        })
    return rows


def product_batches(product_id: str) -> dict:
    """
    Batch breakdown of a product.

    When labelled units account for less than stock_today, the rest is shown
    as a LEGACY pseudo-unit so the batch list always adds up to the total.
    """
    product = get_product(product_id)
    units = (
        db.session.query(StockUnit)
        .filter(
            StockUnit.product_id == product.id,
            StockUnit.status == UNIT_STATUS_IN_STOCK,
            StockUnit.quantity > 0,
        )
        .all()
    )
    units.sort(key=lambda u: (u.expiry_date or date.max, u.created_at, u.id))

    batches = [{**u.to_dict(), "is_unlabeled": False} for u in units]
    recorded = sum(u.quantity for u in units)
    gap = (product.stock_today or 0) - recorded
    if gap > 0:
        batches.append({
            "unique_id": f"INITIAL-{product.id}",
            "product_id": product.id,
            "product_name": product.name,
            "batch_code": LEGACY_BATCH,
            "arrival_date": "System",
            "expiry_date": None,
            "supplier": "Migration",
            "status": UNIT_STATUS_IN_STOCK,
            "quantity": gap,
            "note": None,
            "is_unlabeled": True,
        })

    return {
        "product": product.to_dict(),
        "batches": batches,
        "recorded_total": recorded,
        "legacy_gap": max(gap, 0),
        "total": sum(b["quantity"] for b in batches),
    }


def recent_history(product_id: str, limit: int = 30) -> list[dict]:
    product = get_product(product_id)
    entries = logs_for_product(product)
    return [e.to_dict() for e in reversed(entries[-limit:])]


def unit_trace(unique_id: str) -> dict:
    unit = get_unit(sanitize_code(unique_id))
    if unit is None:
        raise NotFoundError(f"Unit {unique_id} not found")
    return {
        "unit": unit.to_dict(),
        "logs": [e.to_dict() for e in logs_for_unit(unit.unique_id)],
    }


def lookup_code(code: str) -> dict:
    """Resolve a scanned code: a unit id first, then a product id."""
    clean = sanitize_code(code)
    if not clean:
        raise ValidationError("code is required")
    unit = get_unit(clean)
    if unit is not None:
        return {"kind": "unit", **unit_trace(clean)}
    product = db.session.get(Product, clean)
    if product is not None:
        return {"kind": "product", **product_batches(product.id)}
    raise NotFoundError(f"ID {code} not found")


def _day_totals(entries: list[LogEntry]) -> tuple[int, int]:
    inbound = sum(e.quantity_change for e in entries if e.type == LOG_TYPE_IN)
    outbound = sum(abs(e.quantity_change) for e in entries if e.type == LOG_TYPE_OUT)
    return inbound, outbound


def dashboard(today: date, *, trend_days: int = 7) -> dict:
    """Headline numbers. Migration rows are not real movements and are skipped."""
    products = db.session.query(Product).all()
    trend_start = today - timedelta(days=trend_days - 1)
    window = [
        e for e in all_logs(since=start_of_day(trend_start), until=end_of_day(today))
        if not is_migration_entry(e)
    ]

    by_day: dict[date, list[LogEntry]] = {}
    for entry in window:
        by_day.setdefault(entry.timestamp.date(), []).append(entry)

    todays = by_day.get(today, [])
    today_in, today_out = _day_totals(todays)

    trend = []
    for offset in range(trend_days):
        day = trend_start + timedelta(days=offset)
        day_in, day_out = _day_totals(by_day.get(day, []))
        trend.append({"date": to_iso_date(day), "in": day_in, "out": day_out})

    return {
        "total_sku": len(products),
        "low_stock_items": sum(1 for p in products if p.is_low_stock),
        "today_in": today_in,
        "today_out": today_out,
        "today_transaction_count": len(todays),
        "trend": trend,
    }
