"""
Clock helpers.

All persisted timestamps are naive UTC.
"""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo (matches the DateTime columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()
