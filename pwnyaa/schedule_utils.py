"""
Calendar helpers for the scheduled jobs.

All computations take an explicit ``now`` and timezone so they can be tested
without a clock. Times are built from the local wall-clock date and then
localized, which keeps "09:00 every day" at 09:00 across DST changes.
"""

from datetime import date, datetime, timedelta
from typing import Tuple

import pytz


def parse_hhmm(value: str) -> Tuple[int, int]:
    """Parse ``"HH:MM"`` into (hour, minute)."""
    try:
        hour_str, minute_str = value.strip().split(":", 1)
        hour, minute = int(hour_str), int(minute_str)
    except ValueError:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)") from None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid time of day: {value!r}")
    return hour, minute


def get_timezone(name: str) -> pytz.BaseTzInfo:
    return pytz.timezone(name)


def _at(day: date, hour: int, minute: int, tz: pytz.BaseTzInfo) -> datetime:
    return tz.localize(datetime(day.year, day.month, day.day, hour, minute))


def next_daily_run(now: datetime, hour: int, minute: int, tz: pytz.BaseTzInfo) -> datetime:
    """First ``hour:minute`` in ``tz`` strictly after ``now``."""
    local_now = now.astimezone(tz)
    candidate = _at(local_now.date(), hour, minute, tz)
    if candidate <= local_now:
        candidate = _at(local_now.date() + timedelta(days=1), hour, minute, tz)
    return candidate


def next_weekly_run(now: datetime, weekday: int, hour: int, minute: int, tz: pytz.BaseTzInfo) -> datetime:
    """First ``weekday`` (Monday=0) at ``hour:minute`` in ``tz`` strictly after ``now``."""
    local_now = now.astimezone(tz)
    days_ahead = (weekday - local_now.weekday()) % 7
    candidate = _at(local_now.date() + timedelta(days=days_ahead), hour, minute, tz)
    if candidate <= local_now:
        candidate = _at(local_now.date() + timedelta(days=days_ahead + 7), hour, minute, tz)
    return candidate


def seconds_until(target: datetime, now: datetime) -> float:
    return max(0.0, (target - now).total_seconds())
