from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from flask import current_app


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def service_timezone() -> timezone:
    minutes = current_app.config.get("SERVICE_UTC_OFFSET_MINUTES", 0)
    return timezone(timedelta(minutes=minutes))


def service_day(at: Optional[datetime] = None) -> date:
    """
    Local calendar date of the office for a UTC-naive instant.

    Ticket and request numbering reset at local midnight, not UTC midnight.
    """
    at = at or utcnow()
    return at.replace(tzinfo=timezone.utc).astimezone(service_timezone()).date()


def service_day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC-naive [start, end) of a local service day."""
    start_local = datetime.combine(day, time.min, tzinfo=service_timezone())
    start = start_local.astimezone(timezone.utc).replace(tzinfo=None)
    return start, start + timedelta(days=1)


def age_on(birthdate: date, on: date) -> int:
    """Completed years between birthdate and `on`."""
    age = on.year - birthdate.year
    if (on.month, on.day) < (birthdate.month, birthdate.day):
        age -= 1
    return age


def parse_iso_date(value) -> Optional[date]:
    """
    Parse a calendar date.

    - None / "" -> None
    - date -> itself; datetime -> its date part
    - "YYYY-MM-DD" or a full ISO datetime string -> date part
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    if len(s) == 10:
        return date.fromisoformat(s)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s).date()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
