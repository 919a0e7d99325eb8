# Overview: Scanner code normalisation, unit id / batch code generation and natural ordering.

from __future__ import annotations

import re
import secrets
import string
from datetime import date

_ALLOWED_CODE_CHARS = re.compile(r"[^A-Za-z0-9\-&]")
_ALLOWED_BATCH_CHARS = re.compile(r"[^A-Za-z0-9&]")
_CODE_SEPARATORS = re.compile(r"[,;\s]+")
_NATURAL_CHUNKS = re.compile(r"(\d+)")

_BASE36 = string.digits + string.ascii_uppercase

NO_EXPIRY = "NOEXP"


def sanitize_code(raw: str | None) -> str:
    """
    Normalize a scanned or typed code: trim, drop anything outside
    [A-Za-z0-9-&] and uppercase.
    """
    if not raw:
        return ""
    return _ALLOWED_CODE_CHARS.sub("", raw.strip()).upper()


def split_codes(raw) -> list[str]:
    """Accept a list of codes or scanner text separated by commas, semicolons or whitespace."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(c) for c in raw if c is not None and str(c).strip()]
    return [c for c in _CODE_SEPARATORS.split(str(raw)) if c]


def random_suffix(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_batch_code(today: date) -> str:
    """Auto batch code used when the operator leaves the lot field empty: DDMMYY + DP + 3 chars."""
    return f"{today:%d%m%y}DP{random_suffix(3)}"


def clean_batch_code(batch_code: str) -> str:
    return _ALLOWED_BATCH_CHARS.sub("", batch_code).upper()


def generate_unique_id(
    product_id: str,
    batch_code: str,
    arrival_date: date,
    expiry_date: date | None,
) -> str:
    """
    One id per registration, shared by every printed label of that registration.

    Format: {productId}-{BATCH}-{YYYYMMDD}-{YYYYMMDD|NOEXP}-{4 random chars}
    """
    arrival = arrival_date.strftime("%Y%m%d")
    expiry = expiry_date.strftime("%Y%m%d") if expiry_date else NO_EXPIRY
    return f"{product_id}-{clean_batch_code(batch_code)}-{arrival}-{expiry}-{random_suffix(4)}"


def natural_key(value: str | None) -> tuple:
    """Sort key that orders 'PMI2' before 'PMI10'."""
    parts = _NATURAL_CHUNKS.split((value or "").lower())
    return tuple((0, int(p)) if p.isdigit() else (1, p) for p in parts if p != "")
