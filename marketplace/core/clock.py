from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Naive values coming back from the database are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def window_contains(start: Optional[datetime], end: Optional[datetime], now: datetime) -> bool:
    """True when ``now`` lies in [start, end]; a missing bound is open."""
    now = as_utc(now)
    if start is not None and as_utc(start) > now:
        return False
    if end is not None and as_utc(end) < now:
        return False
    return True
