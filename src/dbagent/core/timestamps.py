"""
UTC timestamp helpers (stdlib-only).

Schedules are compared by time inside SQL (the claim's crash-recovery
cutoff), so every timestamp written to the store must use one fixed,
lexicographically sortable format: UTC, microsecond precision, explicit
``+00:00`` offset.

Examples:
    >>> from datetime import datetime
    >>> to_storage(datetime(2024, 1, 1, 1, 0))
    '2024-01-01T01:00:00.000000+00:00'
    >>> from_storage('2024-01-01T01:00:00+00:00').hour
    1
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_storage(dt: datetime | None) -> str | None:
    """Serialize a datetime in the store's sortable format."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat(timespec="microseconds")


def from_storage(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp (string or driver-native datetime)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value))
