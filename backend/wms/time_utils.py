from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


ONE_MS = timedelta(milliseconds=1)


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is the start of that day (UTC)
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s[:10])


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC. Milliseconds are kept because
    migration pairs are exactly one millisecond apart.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc)
    return dt_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    """Exclusive upper bound of a day: midnight of the next day."""
    return start_of_day(day + timedelta(days=1))


def day_window(start: date, end: date) -> tuple[datetime, datetime]:
    """
    Half-open [start 00:00, day after end 00:00) window covering whole days.
    Every timestamp falls in exactly one day, whatever its sub-millisecond part.
    """
    return start_of_day(start), end_of_day(end)


def default_reference_date(today: date, day_of_month: int = 1) -> date:
    """Default back-dating reference for initial-stock opname lines."""
    return today.replace(day=max(1, min(day_of_month, 28)))
