# backend/wms/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Product, StockUnit, LogEntry

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        details = {
            "products": db.session.query(Product).count(),
            "units": db.session.query(StockUnit).count(),
            "log_entries": db.session.query(LogEntry).count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return {"status": database["status"], "database": database}, status_code
