# backend/wms/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/wms.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///wms.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Listing endpoints only show this many days of log rows by default.
    # Balance computation always reads the full log.
    WMS_LOG_WINDOW_DAYS = int(os.environ.get("WMS_LOG_WINDOW_DAYS", "90"))

    # Cadence of `flask stock recalculate --interval` when no value is given
    WMS_RECALC_INTERVAL_SECONDS = int(os.environ.get("WMS_RECALC_INTERVAL_SECONDS", "15"))

    # Default back-dating reference for initial-stock opname: this day of the current month
    WMS_DEFAULT_OPNAME_REF_DAY = int(os.environ.get("WMS_DEFAULT_OPNAME_REF_DAY", "1"))


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
