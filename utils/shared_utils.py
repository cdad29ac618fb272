"""
Shared utility functions for routers and services
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Timezone-aware current time in UTC"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    SQLite hands back naive datetimes even for timezone=True columns;
    those are stored in UTC, so they are tagged rather than converted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string for JSON payloads, None passes through"""
    normalized = as_utc(value)
    return normalized.isoformat() if normalized else None


def clamp(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, value))
