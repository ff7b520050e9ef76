"""UTC-aware datetime utilities.

All datetimes in the system are stored as UTC. SQLite hands back naive
values even for ``timezone=True`` columns, so comparisons go through
``ensure_utc``.
"""

import datetime
from typing import Optional


def utcnow() -> datetime.datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def ensure_utc(dt: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Ensure a datetime is UTC-aware. If naive, assume UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc)


def hours_from_now(hours: float) -> datetime.datetime:
    """UTC timestamp ``hours`` in the future (negative values go back in time)."""
    return utcnow() + datetime.timedelta(hours=hours)


def is_expired(expires_at: Optional[datetime.datetime], now: Optional[datetime.datetime] = None) -> bool:
    """An expiry at or before ``now`` counts as expired."""
    if expires_at is None:
        return False
    return ensure_utc(expires_at) <= (now or utcnow())
