"""UTC helpers. Every instant handled by the service is timezone-aware UTC."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_ms(value: datetime) -> int:
    return int(ensure_utc(value).timestamp() * 1000)


def from_ms(value: int | float) -> datetime:
    # Some feeds report seconds instead of milliseconds
    if value < 1_000_000_000_000:
        value = value * 1000
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def start_of_day(value: datetime) -> datetime:
    value = ensure_utc(value)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)
