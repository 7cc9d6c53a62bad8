"""Datetime helpers for timezone-aware operations."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are assumed to already be UTC. SQLite hands stored
    values back naive, so every comparison against ``utcnow()`` goes
    through here.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
