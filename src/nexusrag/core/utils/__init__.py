"""Shared helpers for the core package."""

from nexusrag.core.utils.datetime_utils import (
    utc_now,
    utc_now_iso,
    ensure_utc,
    parse_iso_datetime,
    parse_optional_iso,
    format_iso,
)
from nexusrag.core.utils.locks import KeyedLock
from nexusrag.core.utils.retry import retry_async, compute_delay

__all__ = [
    "utc_now",
    "utc_now_iso",
    "ensure_utc",
    "parse_iso_datetime",
    "parse_optional_iso",
    "format_iso",
    "KeyedLock",
    "retry_async",
    "compute_delay",
]
