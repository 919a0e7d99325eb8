# backend/wms/routes/units.py
"""
Label registration and unit lookup.
"""
from flask import Blueprint, current_app, request

from ..decorators import require_actor
from ..models.stock import UNIT_STATUSES
from ..errors import ValidationError
from ..services import registration_service, report_service
from ..validation import coerce_date, coerce_int, require_fields


units_bp = Blueprint("units", __name__, url_prefix="/api")


@units_bp.get("/units")
def list_units():
    status = request.args.get("status")
    if status and status not in UNIT_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(UNIT_STATUSES)}")
    units = registration_service.list_units(product_id=request.args.get("product_id"), status=status)
    return {"units": [u.to_dict() for u in units]}, 200


@units_bp.post("/units/register")
@require_actor
def register_units():
    """
    Register a batch of labels as one CREATED unit.

    Request body:
    {
        "product_id": str,
        "supplier": str,
        "arrival_date": "YYYY-MM-DD",
        "expiry_date": "YYYY-MM-DD" (optional),
        "batch_code": str (optional, generated when empty),
        "quantity_per_label": int,
        "label_count": int,
        "note": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "product_id", "supplier", "arrival_date")
    unit, label = registration_service.register_units(
        product_id=payload["product_id"],
        supplier=payload["supplier"],
        arrival_date=coerce_date(payload["arrival_date"], "arrival_date"),
        expiry_date=coerce_date(payload.get("expiry_date"), "expiry_date", required=False),
        batch_code=payload.get("batch_code"),
        quantity_per_label=coerce_int(payload.get("quantity_per_label"), "quantity_per_label", minimum=1),
        label_count=coerce_int(payload.get("label_count"), "label_count", minimum=1),
        note=payload.get("note"),
    )
    current_app.logger.info("Registered unit %s (%d)", unit.unique_id, unit.quantity)
    return {"unit": unit.to_dict(), "label": label}, 201


@units_bp.get("/units/<unique_id>")
def unit_trace(unique_id: str):
    return report_service.unit_trace(unique_id), 200


@units_bp.get("/lookup/<code>")
def lookup(code: str):
    return report_service.lookup_code(code), 200
