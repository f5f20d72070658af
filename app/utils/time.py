"""Time and calendar utilities."""

import calendar
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from app.core.config import settings


def clinic_now(tz_name: str | None = None) -> datetime:
    """Get the current wall-clock time at the clinic.

    The result is naive: dates and times in the engine are clinic-local.

    Args:
        tz_name: IANA zone name (defaults to the configured clinic zone)

    Returns:
        Naive datetime in clinic-local time
    """
    zone = ZoneInfo(tz_name or settings.clinic_timezone)
    return datetime.now(zone).replace(tzinfo=None)


def to_clinic_local(dt: datetime, tz_name: str | None = None) -> datetime:
    """Convert a timestamp to naive clinic-local time.

    Naive inputs are assumed to already be clinic-local.
    """
    if dt.tzinfo is None:
        return dt
    zone = ZoneInfo(tz_name or settings.clinic_timezone)
    return dt.astimezone(zone).replace(tzinfo=None)


def minutes_of(t: time) -> int:
    """Minutes since midnight for a time of day."""
    return t.hour * 60 + t.minute


def time_from_minutes(minutes: int) -> time:
    """Time of day for a minute offset since midnight."""
    return time(minutes // 60, minutes % 60)


def parse_time(value: str) -> time:
    """Parse "HH:MM" or "HH:MM:SS" into a time of day.

    Raises:
        ValueError: If the string is not a valid time
    """
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Could not parse time: {value}")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(float(parts[2])) if len(parts) == 3 else 0
    return time(hour, minute, second)


def parse_date(value: str) -> date:
    """Parse an ISO date, tolerating a trailing time part.

    Raises:
        ValueError: If the string is not a valid date
    """
    return date.fromisoformat(value.strip()[:10])


def parse_datetime(dt_str: str) -> datetime:
    """Parse ISO datetime string.

    Args:
        dt_str: ISO format datetime string (a trailing "Z" means UTC)

    Returns:
        Parsed datetime object
    """
    value = dt_str.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Could not parse datetime: {dt_str}") from None


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def month_days(year: int, month: int) -> list[date]:
    """Every calendar day of a month, in order."""
    first, last = month_bounds(year, month)
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move a (year, month) pair by ``delta`` months."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def add_months(day: date, months: int) -> date:
    """Add calendar months to a date, clamping to the last day of the month."""
    year, month = shift_month(day.year, day.month, months)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def iso_week_bounds(day: date) -> tuple[date, date]:
    """Monday and Sunday of the week containing ``day``."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)
