# backend/wms/routes/transactions.py
"""
Stock movements: goods receipt, dispatch, unit corrections and the
admin correction panel.

Each request is one business transaction; nothing is written unless
every line succeeds.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_actor, require_admin
from ..errors import ValidationError
from ..services import adjustment_service, inbound_service, outbound_service
from ..time_utils import parse_iso_datetime
from ..validation import coerce_bool, coerce_int, require_fields


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _occurred_at(payload: dict):
    raw = payload.get("occurred_at")
    if raw in (None, ""):
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError("occurred_at must be an ISO-8601 timestamp") from None


@transactions_bp.post("/inbound")
@require_actor
def inbound():
    """
    Confirm registered units into stock.

    Request body:
    {
        "codes": [str] | str,       // list, or newline/comma separated text
        "note": str (optional),
        "is_migration": bool (optional),
        "unit_notes": {unique_id: str} (optional)
    }

    Returns:
        201 with units and log entries
        400 empty or duplicate codes
        404 codes that are unknown or not awaiting receipt
    """
    payload = request.get_json(silent=True) or {}
    unit_notes = payload.get("unit_notes")
    if unit_notes is not None and not isinstance(unit_notes, dict):
        raise ValidationError("unit_notes must be an object keyed by unique_id")
    result = inbound_service.process_inbound(
        codes=payload.get("codes"),
        actor=g.actor,
        note=payload.get("note"),
        is_migration=coerce_bool(payload.get("is_migration", False)),
        unit_notes=unit_notes,
        occurred_at=_occurred_at(payload),
    )

    current_app.logger.info(
        "Inbound by %s: %d units%s",
        g.actor.username,
        len(result.units),
        " (migration)" if payload.get("is_migration") else "",
    )
    return result.to_dict(), 201


@transactions_bp.post("/outbound")
@require_actor
def outbound():
    """
    Dispatch stock from units.

    Request body:
    {
        "lines": [
            {
                "unique_id": str,
                "qty": int,
                "recipient": str,
                "note": str (optional),
                "expected_quantity": int (optional)
            }
        ]
    }

    Returns:
        201 with the OUT log entries
        400 invalid lines (details.lines) or quantity above available
        404 unknown unit
        409 unit not in stock or changed since it was read
    """
    payload = request.get_json(silent=True) or {}
    raw_lines = payload.get("lines")
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("lines must be a non-empty list")

    lines = []
    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"line {index} must be an object")
        require_fields(raw, "unique_id")
        lines.append(
            outbound_service.OutboundLine(
                unique_id=raw["unique_id"],
                qty=coerce_int(raw.get("qty"), f"lines[{index}].qty"),
                recipient=raw.get("recipient") or "",
                note=raw.get("note"),
                expected_quantity=coerce_int(
                    raw.get("expected_quantity"), f"lines[{index}].expected_quantity", required=False
                ),
            )
        )

    entries = outbound_service.process_outbound(lines, g.actor, occurred_at=_occurred_at(payload))

    current_app.logger.info("Outbound by %s: %d lines", g.actor.username, len(entries))
    return {"logs": [e.to_dict() for e in entries]}, 201


@transactions_bp.post("/adjust")
@require_actor
@require_admin
def adjust():
    """
    Set one unit to a counted quantity. Admin only; users file opname
    requests instead.

    Request body: {"unique_id": str, "new_qty": int, "note": str (optional)}
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "unique_id")
    new_qty = coerce_int(payload.get("new_qty"), "new_qty", minimum=0)
    entry = adjustment_service.adjust_unit(payload["unique_id"], new_qty, payload.get("note"), g.actor)
    if entry is None:
        return {"changed": False}, 200
    current_app.logger.info(
        "Unit %s adjusted by %s (%+d)", entry.stock_item_id, g.actor.username, entry.quantity_change
    )
    return {"changed": True, "log": entry.to_dict()}, 200


@transactions_bp.post("/admin-correction")
@require_actor
@require_admin
def admin_correction():
    """
    Request body:
    {
        "product_id": str,
        "delta": int,
        "note": str,                 // required when delta != 0
        "safety_stock": int (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "product_id")
    entry = adjustment_service.admin_correct_product(
        payload["product_id"],
        delta=coerce_int(payload.get("delta", 0), "delta"),
        note=payload.get("note"),
        actor=g.actor,
        safety_stock=coerce_int(payload.get("safety_stock"), "safety_stock", minimum=0, required=False),
    )
    if entry is not None:
        current_app.logger.warning(
            "Admin correction on %s by %s (%+d): %s",
            payload["product_id"],
            g.actor.username,
            entry.quantity_change,
            entry.note,
        )
    return {"changed": entry is not None, "log": entry.to_dict() if entry else None}, 200
