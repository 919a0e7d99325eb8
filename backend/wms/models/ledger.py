from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z


LOG_TYPE_IN = "IN"
LOG_TYPE_OUT = "OUT"
LOG_TYPE_CREATE = "CREATE"
LOG_TYPE_ADJUST = "ADJUST"

LOG_TYPES = (LOG_TYPE_IN, LOG_TYPE_OUT, LOG_TYPE_CREATE, LOG_TYPE_ADJUST)

ORIGIN_NORMAL = "NORMAL"
ORIGIN_MIGRATION = "MIGRATION"

SYSTEM_MIGRATION_ID = "SYSTEM-MIGRATION"


class LogEntry(db.Model):
    """
    Append-only stock movement.

    INVARIANT:
    For every product, initial_stock + SUM(quantity_change) == stock on hand.
    Rows are inserted once and never updated or deleted.

    JOIN KEY:
    product_id is the key used for balances. product_name is display
    metadata; rows imported without product_id are resolved by name.

    ORIGIN:
    MIGRATION marks the IN/ADJUST pairs that convert legacy opening balance
    into labelled stock. They net to zero and are hidden from history views.
    """
    __tablename__ = "log_entries"
    __table_args__ = (
        db.Index("ix_log_entries_product_timestamp", "product_id", "timestamp"),
        db.Index("ix_log_entries_name_timestamp", "product_name", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    # Autoincrement id doubles as the insertion-order tie-break for equal timestamps
    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)

    # Back-reference only: a unit unique_id or SYSTEM-MIGRATION
    stock_item_id = db.Column(db.String(128), nullable=True, index=True)

    product_id = db.Column(db.String(32), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    quantity_change = db.Column(db.Integer, nullable=False, default=0)

    recipient = db.Column(db.String(255), nullable=True)
    note = db.Column(db.Text, nullable=True)
    user = db.Column(db.String(120), nullable=True)

    origin = db.Column(db.String(16), nullable=False, default=ORIGIN_NORMAL)

    def __repr__(self) -> str:
        return f"<LogEntry {self.id} {self.type} {self.product_name!r} {self.quantity_change:+d}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "stock_item_id": self.stock_item_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "timestamp": to_utc_z(self.timestamp),
            "quantity_change": self.quantity_change,
            "recipient": self.recipient,
            "note": self.note,
            "user": self.user,
            "origin": self.origin,
        }
