from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return dt as tz-aware UTC; SQLite hands back naive values."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso(dt: Optional[datetime]) -> Optional[str]:
    dt = as_utc(dt)
    return dt.isoformat().replace('+00:00', 'Z') if dt else None


def stamp_after(*previous: Optional[datetime]) -> datetime:
    """Current time, never earlier than any of the given timestamps."""
    now = utcnow()
    for p in previous:
        p = as_utc(p)
        if p is not None and p > now:
            now = p
    return now


def minutes_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    start, end = as_utc(start), as_utc(end)
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 60.0
