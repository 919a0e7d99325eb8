from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z, to_iso_date, utcnow


UNIT_STATUS_CREATED = "CREATED"
UNIT_STATUS_IN_STOCK = "IN_STOCK"
UNIT_STATUS_OUTBOUND = "OUTBOUND"
UNIT_STATUS_EXPIRED = "EXPIRED"
UNIT_STATUS_CONSUMED = "CONSUMED"
UNIT_STATUS_PENDING_APPROVAL = "PENDING_APPROVAL"

UNIT_STATUSES = (
    UNIT_STATUS_CREATED,
    UNIT_STATUS_IN_STOCK,
    UNIT_STATUS_OUTBOUND,
    UNIT_STATUS_EXPIRED,
    UNIT_STATUS_CONSUMED,
    UNIT_STATUS_PENDING_APPROVAL,
)

NO_BATCH = "TANPA-BATCH"


def status_for_quantity(quantity: int) -> str:
    """A unit is OUTBOUND once nothing remains, IN_STOCK otherwise."""
    return UNIT_STATUS_OUTBOUND if quantity <= 0 else UNIT_STATUS_IN_STOCK


class StockUnit(db.Model):
    """
    One registered batch of a product.

    SINGLE ENTRY, MANY LABELS:
    A registration of N identical labels is stored as ONE row whose quantity
    is the total; the printed labels are never individually distinguished.

    LIFECYCLE:
    CREATED (labels registered) -> IN_STOCK (inbound confirmed)
    -> OUTBOUND once quantity reaches 0. Rows are never deleted; zeroed units
    stay as historical record. quantity is never negative.
    """
    __tablename__ = "stock_units"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_units_quantity_non_negative"),
        db.Index("ix_stock_units_product_status", "product_id", "status"),
        db.Index("ix_stock_units_product_batch", "product_id", "batch_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    unique_id = db.Column(db.String(128), nullable=False, unique=True, index=True)

    # No foreign key: deleting a product leaves its units as history
    product_id = db.Column(db.String(32), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    batch_code = db.Column(db.String(64), nullable=True)
    arrival_date = db.Column(db.Date, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    supplier = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(24), nullable=False, default=UNIT_STATUS_CREATED, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    note = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockUnit {self.unique_id!r} status={self.status} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "unique_id": self.unique_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "batch_code": self.batch_code,
            "arrival_date": to_iso_date(self.arrival_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "supplier": self.supplier,
            "status": self.status,
            "quantity": self.quantity,
            "note": self.note,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
