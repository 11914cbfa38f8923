"""Business-local calendar helpers."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Europe/Athens"


def local_now(tz_name: str = DEFAULT_TIMEZONE) -> datetime:
    """Current wall-clock time in the business zone, as a naive datetime."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def local_today(tz_name: str = DEFAULT_TIMEZONE) -> date:
    return local_now(tz_name).date()


def weekday_index(day: date) -> int:
    """0=Sunday ... 6=Saturday, the numbering used by the weekly schedule."""
    return day.isoweekday() % 7


def parse_date(value: str) -> date:
    return date.fromisoformat(value)


def parse_time(value: str) -> time:
    """Accept HH:MM or HH:MM:SS and drop seconds."""
    parsed = time.fromisoformat(value)
    return parsed.replace(second=0, microsecond=0)


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def date_range(start: date, days: int):
    for offset in range(days):
        yield start + timedelta(days=offset)
