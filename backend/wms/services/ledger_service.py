# Overview: Append-only movement log; the source of truth for every balance.

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import and_, func, or_

from ..extensions import db
from ..models import LogEntry, Product
from ..models.ledger import ORIGIN_MIGRATION, ORIGIN_NORMAL, SYSTEM_MIGRATION_ID
"""
Movement Log Invariants (authoritative)

- Rows are inserted once and never updated or deleted; this module exposes
  no update or delete.
- quantity_change is signed: positive adds stock, negative removes it.
- Ordering is (timestamp, id): equal timestamps fall back to insertion order.
- product_id is the join key. Legacy rows without product_id are matched on
  the trimmed, lower-cased product name.
"""

_LEGACY_MIGRATION_MARKERS = ("migrasi:", "konversi saldo lama")


def normalize_name(name: str | None) -> str:
    return (name or "").strip().lower()


def build_log_entry(
    *,
    type: str,
    product_id: str | None,
    product_name: str,
    quantity_change: int,
    stock_item_id: str | None,
    timestamp: datetime,
    note: Optional[str] = None,
    recipient: Optional[str] = None,
    user: Optional[str] = None,
    origin: str = ORIGIN_NORMAL,
) -> LogEntry:
    return LogEntry(
        type=type,
        product_id=product_id,
        product_name=product_name,
        quantity_change=quantity_change,
        stock_item_id=stock_item_id,
        timestamp=timestamp,
        note=note,
        recipient=recipient,
        user=user,
        origin=origin,
    )


def append_log_entries(entries: Iterable[LogEntry]) -> list[LogEntry]:
    """
    Bulk append. Flushes so ids (the insertion-order tie-break) are assigned
    without committing; the caller owns the transaction.
    """
    entries = list(entries)
    db.session.add_all(entries)
    db.session.flush()
    return entries


def is_migration_entry(entry: LogEntry) -> bool:
    """
    True for legacy-balance conversion rows.

    The typed origin column is authoritative; the stock_item_id sentinel and
    note markers are still honoured for rows imported from older data.
    """
    if entry.origin == ORIGIN_MIGRATION:
        return True
    if entry.stock_item_id == SYSTEM_MIGRATION_ID:
        return True
    note = (entry.note or "").lower()
    return any(marker in note for marker in _LEGACY_MIGRATION_MARKERS)


def product_log_filter(product: Product):
    return or_(
        LogEntry.product_id == product.id,
        and_(
            LogEntry.product_id.is_(None),
            func.lower(func.trim(LogEntry.product_name)) == normalize_name(product.name),
        ),
    )


def logs_for_product(
    product: Product,
    *,
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[LogEntry]:
    """All entries for a product, oldest first. `since` is inclusive, `until` exclusive."""
    q = db.session.query(LogEntry).filter(product_log_filter(product))
    if since is not None:
        q = q.filter(LogEntry.timestamp >= since)
    if until is not None:
        q = q.filter(LogEntry.timestamp < until)
    return q.order_by(LogEntry.timestamp.asc(), LogEntry.id.asc()).all()


def logs_for_unit(unique_id: str) -> list[LogEntry]:
    """Entries that reference one unit, newest first."""
    return (
        db.session.query(LogEntry)
        .filter(LogEntry.stock_item_id == unique_id)
        .order_by(LogEntry.timestamp.desc(), LogEntry.id.desc())
        .all()
    )


def all_logs(*, since: datetime | None = None, until: datetime | None = None) -> list[LogEntry]:
    q = db.session.query(LogEntry)
    if since is not None:
        q = q.filter(LogEntry.timestamp >= since)
    if until is not None:
        q = q.filter(LogEntry.timestamp < until)
    return q.order_by(LogEntry.timestamp.asc(), LogEntry.id.asc()).all()


def group_logs_by_product(products: Iterable[Product], entries: Iterable[LogEntry]) -> dict[str, list[LogEntry]]:
    """
    Bucket entries per product id, resolving legacy name-only rows.
    Entries that match no catalog product (deleted products) are dropped.
    """
    products = list(products)
    known_ids = {p.id for p in products}
    by_name = {normalize_name(p.name): p.id for p in products}
    grouped: dict[str, list[LogEntry]] = {p.id: [] for p in products}
    for entry in entries:
        if entry.product_id is not None:
            pid = entry.product_id if entry.product_id in known_ids else None
        else:
            pid = by_name.get(normalize_name(entry.product_name))
        if pid is not None:
            grouped[pid].append(entry)
    return grouped
