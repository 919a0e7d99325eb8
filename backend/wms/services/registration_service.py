# Overview: Label registration; creates the CREATED unit that inbound later confirms.

from __future__ import annotations

from datetime import date

from ..errors import ValidationError
from ..extensions import db
from ..identifiers import generate_batch_code, generate_unique_id
from ..models import StockUnit
from ..models.stock import UNIT_STATUS_CREATED
from ..time_utils import utcnow
from .concurrency import run_atomic
from .product_service import get_product


def register_units(
    *,
    product_id: str,
    supplier: str,
    arrival_date: date,
    quantity_per_label: int,
    label_count: int,
    expiry_date: date | None = None,
    batch_code: str | None = None,
    note: str | None = None,
) -> tuple[StockUnit, dict]:
    """
    Register one batch of identical labels.

    SINGLE ENTRY: the whole registration is ONE unit row with
    quantity = quantity_per_label * label_count. Every printed label carries
    the same unique_id and shows quantity_per_label.

    No log entry is written here; stock is not on hand until inbound.

    Returns:
        (unit, label payload for the print collaborator)
    """
    if not (supplier or "").strip():
        raise ValidationError("supplier is required")
    if quantity_per_label <= 0:
        raise ValidationError("quantity_per_label must be greater than 0")
    if label_count <= 0:
        raise ValidationError("label_count must be greater than 0")
    if expiry_date is not None and expiry_date < arrival_date:
        raise ValidationError("expiry_date cannot be before arrival_date")

    def _op():
        product = get_product(product_id)
        final_batch = (batch_code or "").strip() or generate_batch_code(utcnow().date())

        unique_id = generate_unique_id(product.id, final_batch, arrival_date, expiry_date)
        while db.session.query(StockUnit.id).filter_by(unique_id=unique_id).first():
            unique_id = generate_unique_id(product.id, final_batch, arrival_date, expiry_date)

        unit = StockUnit(
            unique_id=unique_id,
            product_id=product.id,
            product_name=product.name,
            batch_code=final_batch,
            arrival_date=arrival_date,
            expiry_date=expiry_date,
            supplier=supplier.strip(),
            status=UNIT_STATUS_CREATED,
            quantity=quantity_per_label * label_count,
            note=note,
        )
        db.session.add(unit)
        db.session.flush()

        label = {
            "unique_id": unit.unique_id,
            "product_id": product.id,
            "product_name": product.name,
            "batch_code": final_batch,
            "quantity_per_label": quantity_per_label,
            "label_count": label_count,
            "unit": product.unit,
            "supplier": unit.supplier,
            "arrival_date": arrival_date.isoformat(),
            "expiry_date": expiry_date.isoformat() if expiry_date else None,
        }
        return unit, label

    return run_atomic(_op, action="register units")


def get_unit(unique_id: str) -> StockUnit | None:
    return db.session.query(StockUnit).filter_by(unique_id=unique_id).first()


def list_units(*, product_id: str | None = None, status: str | None = None) -> list[StockUnit]:
    q = db.session.query(StockUnit)
    if product_id:
        q = q.filter(StockUnit.product_id == product_id)
    if status:
        q = q.filter(StockUnit.status == status)
    return q.order_by(StockUnit.created_at.desc(), StockUnit.id.desc()).all()
