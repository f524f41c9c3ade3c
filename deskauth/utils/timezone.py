"""
Timezone utilities.

Timestamps are stored as naive UTC datetimes in the database; these helpers
keep every comparison on the same footing.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Get current UTC datetime as a naive value (matches stored columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to naive UTC.

    Args:
        dt: A datetime object (naive assumed UTC, or timezone-aware)

    Returns:
        naive datetime in UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def is_expired(expires_at: datetime) -> bool:
    """Check whether a stored expiry timestamp is in the past (None counts as expired)."""
    if expires_at is None:
        return True
    return to_naive_utc(expires_at) <= utcnow()
