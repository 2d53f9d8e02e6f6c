"""
Timezone utilities for the booking engine.

Instants are stored in UTC. Coach working windows and calendar months are
interpreted in the coach's own timezone.
"""

from datetime import date, datetime, time, timezone
from typing import Optional, Tuple

import pytz

from .config import settings


def get_timezone(name: Optional[str] = None) -> pytz.BaseTzInfo:
    """Return a pytz timezone, falling back to the configured default."""
    return pytz.timezone(name or settings.default_timezone)


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are treated as UTC; SQLite returns stored instants without
    tzinfo, so every comparison goes through here.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_today(tz_name: Optional[str] = None) -> date:
    """Get 'today' in the given timezone."""
    return datetime.now(get_timezone(tz_name)).date()


def localize(day: date, wall_clock: time, tz_name: Optional[str] = None) -> datetime:
    """Combine a local date and wall-clock time into an aware UTC instant."""
    tz = get_timezone(tz_name)
    local_dt = tz.localize(datetime.combine(day, wall_clock))
    return local_dt.astimezone(pytz.UTC)


def month_start(instant: datetime, tz_name: Optional[str] = None) -> date:
    """First day of the calendar month containing the instant, in the given timezone."""
    local_dt = ensure_utc(instant).astimezone(get_timezone(tz_name))
    return local_dt.date().replace(day=1)


def day_of_week_index(target_date: date) -> int:
    """Day index with Sunday as 0, matching the template column."""
    return (target_date.weekday() + 1) % 7


def local_day_and_time(instant: datetime, tz_name: Optional[str] = None) -> Tuple[int, str]:
    """(day_of_week_index, "HH:MM") of the instant on the wall clock of tz_name."""
    local_dt = ensure_utc(instant).astimezone(get_timezone(tz_name))
    return day_of_week_index(local_dt.date()), local_dt.strftime("%H:%M")
