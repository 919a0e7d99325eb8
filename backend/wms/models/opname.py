from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z, to_iso_date, utcnow


REQUEST_STATUS_PENDING = "PENDING"
REQUEST_STATUS_APPROVED = "APPROVED"
REQUEST_STATUS_REJECTED = "REJECTED"
REQUEST_STATUSES = (REQUEST_STATUS_PENDING, REQUEST_STATUS_APPROVED, REQUEST_STATUS_REJECTED)


class OpnameRequest(db.Model):
    """
    Stock-take correction proposed by a non-admin user.

    LIFECYCLE:
    1. PENDING: submitted, no effect on stock
    2. APPROVED: an admin applied it through the direct-commit path
    3. REJECTED: an admin declined it
    """
    __tablename__ = "opname_requests"
    __table_args__ = (
        db.Index("ix_opname_requests_status_submitted", "status", "submitted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(32), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    batch_code = db.Column(db.String(64), nullable=False)

    system_qty = db.Column(db.Integer, nullable=False)
    physical_qty = db.Column(db.Integer, nullable=False)
    variance = db.Column(db.Integer, nullable=False)
    note = db.Column(db.Text, nullable=True)

    is_initial_stock_adjustment = db.Column(db.Boolean, nullable=False, default=False)
    reference_date = db.Column(db.Date, nullable=True)

    submitted_by = db.Column(db.String(120), nullable=False)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    status = db.Column(db.String(16), nullable=False, default=REQUEST_STATUS_PENDING, index=True)
    resolved_by = db.Column(db.String(120), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolution_note = db.Column(db.Text, nullable=True)

    def __repr__(self) -> str:
        return f"<OpnameRequest {self.id} {self.product_id}/{self.batch_code} {self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "batch_code": self.batch_code,
            "system_qty": self.system_qty,
            "physical_qty": self.physical_qty,
            "variance": self.variance,
            "note": self.note,
            "is_initial_stock_adjustment": self.is_initial_stock_adjustment,
            "reference_date": to_iso_date(self.reference_date),
            "submitted_by": self.submitted_by,
            "submitted_at": to_utc_z(self.submitted_at),
            "status": self.status,
            "resolved_by": self.resolved_by,
            "resolved_at": to_utc_z(self.resolved_at),
            "resolution_note": self.resolution_note,
        }
