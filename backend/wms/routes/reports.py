# backend/wms/routes/reports.py
"""
Read-only reporting: stock card, recap, movement history, dashboard and
cache drift.
"""
from datetime import timedelta

from flask import Blueprint, current_app, request

from ..decorators import require_actor, require_admin
from ..services import balance_service, report_service
from ..time_utils import utcnow
from ..validation import coerce_int, date_range_args, require_fields


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _month_to_date(args):
    today = utcnow().date()
    return date_range_args(args, default_start=today.replace(day=1), default_end=today)


@reports_bp.get("/stock-card")
def stock_card():
    """
    Query: product_id (required), start, end (YYYY-MM-DD; default month to date).

    Returns opening balance, each movement with its running balance, and
    the closing balance.
    """
    require_fields(request.args, "product_id")
    start, end = _month_to_date(request.args)
    return report_service.stock_card(request.args["product_id"], start, end), 200


@reports_bp.get("/recap")
def recap():
    start, end = _month_to_date(request.args)
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "rows": report_service.recap(start, end),
    }, 200


@reports_bp.get("/movements")
def movements():
    """Query: start, end, search, type. Defaults to the configured log window."""
    today = utcnow().date()
    window_days = current_app.config["WMS_LOG_WINDOW_DAYS"]
    start, end = date_range_args(
        request.args,
        default_start=today - timedelta(days=window_days),
        default_end=today,
    )
    rows = report_service.movements(
        start,
        end,
        search=request.args.get("search"),
        type=request.args.get("type") or None,
    )
    return {"logs": rows}, 200


@reports_bp.get("/dashboard")
def dashboard():
    days = coerce_int(request.args.get("days"), "days", minimum=1, required=False) or 7
    return report_service.dashboard(utcnow().date(), trend_days=days), 200


@reports_bp.get("/drift")
@require_actor
@require_admin
def drift():
    """Products whose cached stock_today differs from the ledger."""
    rows = balance_service.find_drift()
    if rows:
        current_app.logger.warning("Stock cache drift on %d products", len(rows))
    return {"drift": rows}, 200
