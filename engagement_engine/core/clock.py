"""
Timezone helpers. All instants handled by the engine are timezone-aware UTC.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """
    Attach UTC to naive datetimes; convert aware ones to UTC.

    Args:
        value: Any datetime.

    Returns:
        datetime: The same instant, timezone-aware, in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from `earlier` to `later` (floored)."""
    delta = ensure_aware(later) - ensure_aware(earlier)
    return int(delta.total_seconds() // 86400)
