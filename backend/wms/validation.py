from __future__ import annotations

from datetime import date
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_date


def require_fields(payload: dict, *names: str) -> None:
    missing = [n for n in names if payload.get(n) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field: {', '.join(missing)}")


def coerce_int(value: Any, field: str, *, minimum: int | None = None, required: bool = True) -> int | None:
    """
    Strict integer coercion for JSON/query input.

    Rejects floats, booleans, scientific notation and decimal strings so
    that '12.5' never silently becomes 12.
    """
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer") from None
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return result


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def coerce_date(value: Any, field: str, *, required: bool = True) -> date | None:
    if isinstance(value, date):
        return value
    try:
        parsed = parse_iso_date(value) if value is not None else None
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date (YYYY-MM-DD)") from None
    if parsed is None and required:
        raise ValidationError(f"{field} is required")
    return parsed


def date_range_args(args, *, default_start: date, default_end: date) -> tuple[date, date]:
    start = coerce_date(args.get("start"), "start", required=False) or default_start
    end = coerce_date(args.get("end"), "end", required=False) or default_end
    if start > end:
        raise ValidationError("start date must not be after end date")
    return start, end
