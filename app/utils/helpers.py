"""Shared utility functions.

utcnow:        single source of "now" for services (injectable clock default)
as_utc:        normalise DB datetimes (SQLite returns naive values)
require_int:   pull a mandatory integer id out of a JSON body / query dict
"""
from datetime import datetime, timezone

from app.core.exceptions import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as a UTC-aware datetime.

    All timestamps are written in UTC; SQLite drops the offset on the way
    back, so a naive value is interpreted as UTC rather than local time.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def require_int(data, field: str) -> int:
    """Return ``data[field]`` as an int or raise ValidationError.

    Accepts ints and all-digit strings (query-string values arrive as str).
    Floats are rejected rather than truncated, so 2.9 never acts as user 2;
    booleans are rejected even though ``bool`` subclasses ``int``.
    """
    value = (data or {}).get(field)
    if value is None or value == "":
        raise ValidationError(f"{field} is required", details={field: "required"})
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    raise ValidationError(f"{field} must be an integer id", details={field: "invalid"})
