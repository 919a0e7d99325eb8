# Overview: Error taxonomy shared by services and routes, plus JSON error handlers.

from __future__ import annotations

import enum
from typing import Any

from flask import Flask, current_app, jsonify


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    STORAGE = "STORAGE"
    FORBIDDEN = "FORBIDDEN"


class InventoryError(Exception):
    """Base class for every error the stock core reports to its caller."""

    kind: ErrorKind = ErrorKind.VALIDATION
    http_status: int = 400

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind.value}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(InventoryError):
    """A referenced unit/product/request id does not resolve."""
    kind = ErrorKind.NOT_FOUND
    http_status = 404


class ValidationError(InventoryError, ValueError):
    """400-level input problem. Raised before any mutation is attempted."""
    kind = ErrorKind.VALIDATION
    http_status = 400


class ConflictError(InventoryError):
    """409-level: a row is no longer in the state the caller assumed."""
    kind = ErrorKind.CONFLICT
    http_status = 409


class StorageError(InventoryError):
    """The database failed to persist a write."""
    kind = ErrorKind.STORAGE
    http_status = 500


class PermissionDeniedError(InventoryError):
    kind = ErrorKind.FORBIDDEN
    http_status = 403


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(InventoryError)
    def handle_inventory_error(exc: InventoryError):
        if isinstance(exc, StorageError):
            current_app.logger.error("Storage failure: %s", exc.message)
        return jsonify(exc.to_dict()), exc.http_status

    @app.errorhandler(404)
    def handle_not_found(_exc):
        return jsonify({"error": "Not found", "kind": ErrorKind.NOT_FOUND.value}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(_exc):
        return jsonify({"error": "Method not allowed"}), 405
