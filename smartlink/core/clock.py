"""Time helpers. Everything is stored in UTC; display offsets apply at the edge."""

from datetime import datetime, timezone, tzinfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values (SQLite hands them back without tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_display(value: datetime | None, tz: tzinfo) -> datetime | None:
    if value is None:
        return None
    return as_utc(value).astimezone(tz)
