# backend/wms/routes/products.py
"""
Master data and per-product stock views.

Mutations require an actor; deleting a product requires the Admin role.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_actor, require_admin
from ..models.catalog import ORIGIN_INTERNAL
from ..services import balance_service, outbound_service, product_service, report_service
from ..services.concurrency import run_atomic
from ..time_utils import day_window, utcnow
from ..validation import coerce_int, date_range_args, require_fields


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    products = product_service.list_products(request.args.get("search"))
    return {"products": [p.to_dict() for p in products]}, 200


@products_bp.get("/next-id")
def next_product_id():
    category = request.args.get("category", "Other")
    origin = request.args.get("origin", ORIGIN_INTERNAL)
    return {"id": product_service.next_product_id(category, origin)}, 200


@products_bp.post("")
@require_actor
def create_product():
    """
    Request body:
    {
        "name": str,
        "category": str,          // Packaging | Ingredients | Chemical | Other
        "unit": str,
        "origin": "I" | "E",      // used when "id" is omitted
        "id": str (optional),
        "initial_stock": int (optional),
        "safety_stock": int (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "name")
    product = product_service.create_product(
        name=payload["name"],
        category=payload.get("category", "Other"),
        unit=payload.get("unit", "Pcs"),
        origin=payload.get("origin", ORIGIN_INTERNAL),
        product_id=payload.get("id"),
        initial_stock=coerce_int(payload.get("initial_stock", 0), "initial_stock"),
        safety_stock=coerce_int(payload.get("safety_stock", 0), "safety_stock", minimum=0),
    )
    current_app.logger.info("Product %s created by %s", product.id, g.actor.username)
    return product.to_dict(), 201


@products_bp.get("/<product_id>")
def get_product(product_id: str):
    return product_service.get_product(product_id).to_dict(), 200


@products_bp.patch("/<product_id>")
@require_actor
def update_product(product_id: str):
    payload = request.get_json(silent=True) or {}
    fields = {}
    for key in ("name", "category", "unit"):
        if key in payload:
            fields[key] = payload[key]
    for key in ("initial_stock", "safety_stock"):
        if key in payload:
            fields[key] = coerce_int(payload[key], key)
    product = product_service.update_product(product_id, **fields)
    current_app.logger.info("Product %s updated by %s: %s", product_id, g.actor.username, sorted(fields))
    return product.to_dict(), 200


@products_bp.delete("/<product_id>")
@require_actor
@require_admin
def delete_product(product_id: str):
    product_service.delete_product(product_id, g.actor)
    current_app.logger.warning("Product %s deleted by %s", product_id, g.actor.username)
    return "", 204


@products_bp.get("/<product_id>/batches")
def product_batches(product_id: str):
    return report_service.product_batches(product_id), 200


@products_bp.get("/<product_id>/history")
def product_history(product_id: str):
    limit = coerce_int(request.args.get("limit"), "limit", minimum=1, required=False) or 30
    return {"logs": report_service.recent_history(product_id, limit=limit)}, 200


@products_bp.get("/<product_id>/balance")
def product_balance(product_id: str):
    """Current balance, plus opening/in/out/closing when a window is given."""
    product = product_service.get_product(product_id)
    body = {
        "product_id": product.id,
        "current_balance": balance_service.current_balance(product),
        "stock_today": product.stock_today,
    }
    if request.args.get("start") or request.args.get("end"):
        today = utcnow().date()
        start, end = date_range_args(request.args, default_start=today.replace(day=1), default_end=today)
        start_dt, end_dt = day_window(start, end)
        body["range"] = balance_service.range_balance(product, start_dt, end_dt).to_dict()
    return body, 200


@products_bp.post("/<product_id>/recalculate")
@require_actor
def recalculate_product(product_id: str):
    product_service.get_product(product_id)

    def _op():
        return balance_service.recalculate(product_id)

    product = run_atomic(_op, action="recalculate")
    return product.to_dict(), 200


@products_bp.get("/<product_id>/pick-list")
def pick_list(product_id: str):
    basis = request.args.get("basis", outbound_service.SORT_BY_EXPIRY)
    units = outbound_service.fefo_candidates(product_id, basis)
    return {"units": [u.to_dict() for u in units]}, 200
