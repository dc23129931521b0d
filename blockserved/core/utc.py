"""
UTC DateTime Utilities for BlockServed.

All datetimes are stored and handled in UTC with timezone awareness.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    This is the standard function for all timestamps, including staging
    expiry comparisons. Always returns a datetime with tzinfo=timezone.utc.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC timezone-aware datetime.

    - If naive: assumes UTC and adds timezone (SQLite returns naive values)
    - If aware: converts to UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """
    Format a datetime as ISO 8601 UTC with Z suffix.

    Returns format: "2025-12-08T03:00:00.123Z"
    """
    if dt is None:
        return None
    return to_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")
