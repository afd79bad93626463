"""Timezone-aware datetime utilities.

All engine timestamps are timezone-aware UTC datetimes truncated to whole
milliseconds, and every duration is an integer number of milliseconds
computed from wall-clock time.
"""

from datetime import UTC, date, datetime, time, timedelta

MILLISECOND = timedelta(milliseconds=1)
SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime, truncated to milliseconds."""
    now = datetime.now(UTC)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def to_utc_naive(dt: datetime | None) -> datetime | None:
    """Convert a datetime to naive UTC datetime (for DB columns).

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive datetime in UTC, or None if input is None
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure datetime is timezone-aware UTC.

    Args:
        dt: Datetime to convert

    Returns:
        Timezone-aware UTC datetime, or None if input is None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def duration_ms(start: datetime, end: datetime) -> int:
    """Milliseconds elapsed between two datetimes."""
    return (end - start) // MILLISECOND


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=UTC)


def format_duration(milliseconds: int | float) -> str:
    """Render a duration as ``1h 5m``, ``5m 3s`` or ``42s``."""
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"
