"""Timezone-aware calendar helpers.

All boundaries are computed in the user's timezone and returned as aware
datetimes, so they compare correctly against UTC values from storage.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from planner_bot.core.errors import ValidationError


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone: {name}") from e


def localize(value: datetime, tz: tzinfo) -> datetime:
    """Interpret naive datetimes as wall-clock time in ``tz``."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


def start_of_day(now: datetime, tz: tzinfo, days: int = 0) -> datetime:
    local = now.astimezone(tz).date() + timedelta(days=days)
    return datetime.combine(local, time.min, tzinfo=tz)


def start_of_week(now: datetime, tz: tzinfo) -> datetime:
    """Monday 00:00 of the current week."""
    local = now.astimezone(tz).date()
    return datetime.combine(local - timedelta(days=local.weekday()), time.min, tzinfo=tz)


def start_of_month(now: datetime, tz: tzinfo) -> datetime:
    local = now.astimezone(tz).date().replace(day=1)
    return datetime.combine(local, time.min, tzinfo=tz)


def next_weekday(now: datetime, tz: tzinfo, weekday: int) -> datetime:
    """Start of the next given weekday (0 = Monday), never today."""
    local = now.astimezone(tz).date()
    days_ahead = (weekday - local.weekday()) % 7 or 7
    return datetime.combine(local + timedelta(days=days_ahead), time.min, tzinfo=tz)
