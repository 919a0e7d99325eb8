from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z


CATEGORY_CODES = {
    "Packaging": "P",
    "Ingredients": "I",
    "Chemical": "C",
}
DEFAULT_CATEGORY_CODE = "O"

ORIGIN_INTERNAL = "I"
ORIGIN_EXTERNAL = "E"


class Product(db.Model):
    """
    Catalog entry (SKU).

    ID DESIGN:
    Product.id is a human-assigned code embedding category, origin and a
    sequence, e.g. "PMI007" = Packaging, Material, Internal, #7.

    STOCK FIELDS:
    - initial_stock: signed baseline; only master-data edits and back-dated
      opname corrections write it.
    - stock_today: cache of initial_stock + SUM(log.quantity_change). It is
      rebuilt by balance_service.recalculate() and never trusted over the log.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category", "category"),
    )

    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="Other")
    unit = db.Column(db.String(32), nullable=False, default="Pcs")

    initial_stock = db.Column(db.Integer, nullable=False, default=0)
    safety_stock = db.Column(db.Integer, nullable=False, default=0)
    stock_today = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} stock_today={self.stock_today}>"

    @property
    def is_low_stock(self) -> bool:
        return (self.stock_today or 0) <= (self.safety_stock or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "initial_stock": self.initial_stock,
            "safety_stock": self.safety_stock,
            "stock_today": self.stock_today,
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
