"""
Wall-clock time helpers.

Times are "HH:mm" strings on a 24-hour clock. Intervals are half-open, so
09:00-10:00 and 10:00-11:00 touch but do not overlap.
"""

import re
from datetime import date, datetime
from enum import Enum

from slotbook.errors import FormatError

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
MINUTES_PER_DAY = 24 * 60


class Weekday(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"


_WEEKDAYS = [
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
    Weekday.SATURDAY,
    Weekday.SUNDAY,
]


def time_to_minutes(hhmm: str) -> int:
    """Convert "HH:mm" to minutes since midnight.

    Raises:
        FormatError: If the value is not a valid 24-hour time.
    """
    if not isinstance(hhmm, str) or not TIME_PATTERN.match(hhmm.strip()):
        raise FormatError(f"Invalid time {hhmm!r}; expected HH:mm")
    hours, minutes = hhmm.strip().split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    """Format minutes since midnight as zero-padded "HH:mm"."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise FormatError(f"Minutes out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(hhmm: str) -> str:
    """Return the canonical zero-padded form, e.g. "9:00" -> "09:00"."""
    return minutes_to_time(time_to_minutes(hhmm))


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and end_a > start_b


def times_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """String form of intervals_overlap."""
    return intervals_overlap(
        time_to_minutes(start_a),
        time_to_minutes(end_a),
        time_to_minutes(start_b),
        time_to_minutes(end_b),
    )


def is_within_window(start: str, end: str, window_start: str, window_end: str) -> bool:
    """True if [start, end) lies entirely inside [window_start, window_end)."""
    return (
        time_to_minutes(start) >= time_to_minutes(window_start)
        and time_to_minutes(end) <= time_to_minutes(window_end)
    )


def day_of_week(value: "date | datetime") -> Weekday:
    """Weekday of the value's local calendar day."""
    return _WEEKDAYS[value.weekday()]


def parse_date(value: "str | date | datetime") -> date:
    """Accept an ISO "YYYY-MM-DD" string, a date or a datetime; return the calendar day.

    Raises:
        FormatError: If a string is not an ISO calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise FormatError(f"Invalid date {value!r}; expected YYYY-MM-DD") from None
