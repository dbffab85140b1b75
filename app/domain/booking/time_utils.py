"""Wall-clock and calendar arithmetic for bookings

Times are naive server-local datetimes. Wall-clock times are "HH:MM" strings.
"""

from datetime import date, datetime, time, timedelta

from ...config import DATE_DISPLAY_FORMAT
from ...shared.errors import BadRequestError
from ...shared.validators import TIME_PATTERN


def time_to_minutes(value: str) -> int:
    """'09:30' -> 570"""
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise BadRequestError(f"Invalid time format: {value}. Expected HH:MM")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    """570 -> '09:30'. No wrap-around: 1450 -> '24:10'."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(value: str, minutes: int) -> str:
    return minutes_to_time(time_to_minutes(value) + minutes)


def parse_date(value) -> date:
    """Accept a date, a datetime or a 'YYYY-MM-DD' string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise BadRequestError(f"Invalid date: {value}. Expected YYYY-MM-DD")


def combine_date_time(day: date, value: str, label: str = "time") -> datetime:
    """Build the instant for a wall-clock time on a calendar day.

    A time past the end of the day (e.g. '24:10' produced by minutes_to_time)
    is rejected instead of rolling over to the next day.
    """
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise BadRequestError(f"Invalid {label}: {value}")
    hours, minutes = value.split(":")
    return datetime.combine(day, time(int(hours), int(minutes)))


def format_date(value) -> str:
    """DD/MM/YYYY, used in notification payloads"""
    return parse_date(value).strftime(DATE_DISPLAY_FORMAT)


def day_of_week(value: date) -> int:
    """0 = Sunday ... 6 = Saturday"""
    return (value.weekday() + 1) % 7


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open intervals: touching ends do not overlap"""
    return a_start < b_end and a_end > b_start


def advance_window(now: datetime, min_advance_hours: int, max_advance_days: int):
    """Earliest and latest bookable start instants, both inclusive"""
    return now + timedelta(hours=min_advance_hours), now + timedelta(days=max_advance_days)
