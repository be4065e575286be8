"""Date manipulation utilities"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(expires_at: datetime, now: datetime | None = None) -> bool:
    now = now or utcnow()
    return as_utc(expires_at) <= now


def hours_ago(hours: int, now: datetime | None = None) -> datetime:
    return (now or utcnow()) - timedelta(hours=hours)
