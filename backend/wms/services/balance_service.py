# Overview: Balance engine; derives every stock number from initial_stock plus the movement log.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy import func

from ..extensions import db
from ..models import LogEntry, Product
from ..models.ledger import LOG_TYPE_ADJUST, LOG_TYPE_CREATE, LOG_TYPE_IN, LOG_TYPE_OUT
from .concurrency import run_atomic
from .ledger_service import logs_for_product, product_log_filter
"""
Balance Semantics (authoritative)

- current  = initial_stock + SUM(quantity_change)
- opening(start) = initial_stock + SUM(quantity_change where timestamp < start)
- range(start, end) covers start <= timestamp < end, split into
    inbound-like:  IN, CREATE, ADJUST with positive change
    outbound-like: OUT, ADJUST with negative change
  both summed as absolute values; closing = opening + in - out.
- A product without log entries has opening = initial_stock for any window.
- Product.stock_today is a cache. Only recalculate() writes it.
"""


@dataclass(frozen=True)
class RangeBalance:
    opening: int
    in_sum: int
    out_sum: int

    @property
    def closing(self) -> int:
        return self.opening + self.in_sum - self.out_sum

    def to_dict(self) -> dict:
        return {
            "opening": self.opening,
            "in": self.in_sum,
            "out": self.out_sum,
            "closing": self.closing,
        }


def is_inbound_like(entry: LogEntry) -> bool:
    change = entry.quantity_change or 0
    if entry.type in (LOG_TYPE_IN, LOG_TYPE_CREATE):
        return True
    return entry.type == LOG_TYPE_ADJUST and change > 0


def is_outbound_like(entry: LogEntry) -> bool:
    change = entry.quantity_change or 0
    if entry.type == LOG_TYPE_OUT:
        return True
    return entry.type == LOG_TYPE_ADJUST and change < 0


def sort_entries(entries: Iterable[LogEntry]) -> list[LogEntry]:
    """Chronological order; sorted() is stable, so equal timestamps keep arrival order."""
    return sorted(entries, key=lambda e: (e.timestamp, e.id or 0))


def running_balances(initial_stock: int, entries: Iterable[LogEntry]) -> list[tuple[LogEntry, int]]:
    balance = initial_stock or 0
    rows = []
    for entry in sort_entries(entries):
        balance += entry.quantity_change or 0
        rows.append((entry, balance))
    return rows


def fold_range(
    initial_stock: int,
    entries: Iterable[LogEntry],
    start: datetime,
    end: datetime,
) -> RangeBalance:
    """Pure fold over already-fetched entries of a single product."""
    opening = initial_stock or 0
    in_sum = 0
    out_sum = 0
    for entry in entries:
        change = entry.quantity_change or 0
        if entry.timestamp < start:
            opening += change
        elif entry.timestamp < end:
            if is_inbound_like(entry):
                in_sum += abs(change)
            elif is_outbound_like(entry):
                out_sum += abs(change)
    return RangeBalance(opening=opening, in_sum=in_sum, out_sum=out_sum)


def sum_changes(
    product: Product,
    *,
    since: datetime | None = None,
    before: datetime | None = None,
) -> int:
    """SUM(quantity_change) for a product; `since` is inclusive, `before` exclusive."""
    q = db.session.query(
        func.coalesce(func.sum(LogEntry.quantity_change), 0)
    ).filter(product_log_filter(product))
    if since is not None:
        q = q.filter(LogEntry.timestamp >= since)
    if before is not None:
        q = q.filter(LogEntry.timestamp < before)
    return int(q.scalar() or 0)


def current_balance(product: Product) -> int:
    return (product.initial_stock or 0) + sum_changes(product)


def opening_balance(product: Product, start: datetime) -> int:
    return (product.initial_stock or 0) + sum_changes(product, before=start)


def range_balance(product: Product, start: datetime, end: datetime) -> RangeBalance:
    return fold_range(product.initial_stock, logs_for_product(product, until=end), start, end)


def recalculate(product_id: str) -> Product | None:
    """
    Rebuild the stock_today cache of one product from the log.

    Returns None when the product no longer exists (its log rows remain as
    history). Does not commit; callers run it inside their transaction.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        return None
    correct = current_balance(product)
    if product.stock_today != correct:
        product.stock_today = correct
    return product


def recalculate_products(product_ids: Iterable[str]) -> None:
    db.session.flush()
    for product_id in sorted(set(product_ids)):
        recalculate(product_id)


def find_drift() -> list[dict]:
    """Products whose cached stock_today disagrees with the log."""
    drift = []
    for product in db.session.query(Product).order_by(Product.id).all():
        computed = current_balance(product)
        if (product.stock_today or 0) != computed:
            drift.append({
                "product_id": product.id,
                "name": product.name,
                "cached": product.stock_today,
                "computed": computed,
            })
    return drift


def refresh_projections() -> list[str]:
    """
    Re-project every product cache from the log and commit.

    This is the scheduled convergence task: concurrent writers that raced on
    the cache are corrected here. Returns the ids whose cache changed.
    """
    def _op():
        changed = []
        for product in db.session.query(Product).order_by(Product.id).all():
            computed = current_balance(product)
            if product.stock_today != computed:
                product.stock_today = computed
                changed.append(product.id)
        return changed

    return run_atomic(_op, action="refresh projections")
