"""
Centralized datetime utilities for nexusrag.

All datetimes are timezone-aware UTC. Timestamps are stored in SQLite as
ISO strings with a 'Z' suffix and parsed back with parse_iso_datetime().
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Always returns a timezone-aware datetime.
    """
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC datetime as ISO string with 'Z' suffix."""
    return format_iso(utc_now())


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure datetime is in UTC timezone.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    elif dt.tzinfo == timezone.utc:
        return dt
    else:
        return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: str) -> datetime:
    """
    Parse ISO datetime string to a UTC datetime.

    Handles:
    - 2024-01-01T12:00:00
    - 2024-01-01T12:00:00Z
    - 2024-01-01T12:00:00+00:00
    - 2024-01-01T12:00:00.123456Z

    Raises:
        ValueError: If string cannot be parsed as ISO datetime
    """
    if iso_string.endswith('Z'):
        iso_string = iso_string[:-1] + '+00:00'

    try:
        return ensure_utc(datetime.fromisoformat(iso_string))
    except ValueError as e:
        raise ValueError(f"Invalid ISO datetime string: {iso_string}") from e


def parse_optional_iso(value: Optional[str]) -> Optional[datetime]:
    """parse_iso_datetime() that lets NULL columns through."""
    if value is None:
        return None
    return parse_iso_datetime(value)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO string with Z suffix.

    Example: "2024-01-15T10:30:45.123456Z"
    """
    utc_dt = ensure_utc(dt)
    return utc_dt.isoformat().replace('+00:00', 'Z')
