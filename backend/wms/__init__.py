# backend/wms/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    app.logger.setLevel(level)


def create_app(config_object=None, **overrides) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)
    # Engines are bound in db.init_app, so overrides must land first
    app.config.update(overrides)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.units import units_bp
    from .routes.transactions import transactions_bp
    from .routes.opname import opname_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(units_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(opname_bp)
    app.register_blueprint(reports_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Actor, X-Actor-Role"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
