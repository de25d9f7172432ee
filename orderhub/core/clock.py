"""UTC time helpers shared by models and services."""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def within_window(
    at: datetime,
    starts: Optional[datetime],
    ends: Optional[datetime],
) -> bool:
    """True when `at` lies in [starts, ends]; an unset bound is unbounded."""
    at = ensure_utc(at)
    if starts is not None and ensure_utc(starts) > at:
        return False
    if ends is not None and ensure_utc(ends) < at:
        return False
    return True
