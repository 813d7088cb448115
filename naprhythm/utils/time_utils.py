"""Timestamp parsing, minute arithmetic and local-calendar helpers."""

from datetime import datetime, date, time, timedelta
from typing import Any, Optional

import pytz
from pytz.tzinfo import BaseTzInfo


# Used by: generate_schedule (start_time may arrive as an ISO string)
def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


# Used by: learner, coach_analyzer, schedule_generator, notification_planner
def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, truncated toward zero (negative if end < start)."""
    return int((end - start).total_seconds() / 60)


def add_minutes(dt: datetime, minutes: float) -> datetime:
    return dt + timedelta(minutes=minutes)


def local_hour(dt: datetime, tz: BaseTzInfo) -> int:
    return dt.astimezone(tz).hour


def minutes_since_midnight(dt: datetime, tz: BaseTzInfo) -> int:
    local = dt.astimezone(tz)
    return local.hour * 60 + local.minute


def local_date(dt: datetime, tz: BaseTzInfo) -> date:
    return dt.astimezone(tz).date()


# Used by: schedule_generator (day boundaries and bedtime)
def local_datetime(day: date, at: time, tz: BaseTzInfo) -> datetime:
    """Wall-clock time on a calendar day, returned in UTC (DST-aware)."""
    return tz.localize(datetime.combine(day, at)).astimezone(pytz.utc)


def start_of_day(day: date, tz: BaseTzInfo) -> datetime:
    return local_datetime(day, time.min, tz)


def end_of_day(day: date, tz: BaseTzInfo) -> datetime:
    return local_datetime(day, time.max, tz)


# Used by: schedule_generator rationales, notification_planner bodies
def format_time(dt: datetime, tz: BaseTzInfo) -> str:
    return dt.astimezone(tz).strftime("%I:%M %p").lstrip("0")
