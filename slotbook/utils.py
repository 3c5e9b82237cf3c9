"""Shared utilities used across the booking core."""

import random
import string
from datetime import date, datetime, time
from typing import Optional

_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_appointment_id(now: Optional[datetime] = None) -> str:
    """Build a human-readable appointment id from a timestamp and random suffix.

    Examples:
        >>> generate_appointment_id(datetime(2030, 1, 7, 9, 0)).startswith("APT-")
        True
    """
    moment = now or datetime.now()
    millis = int(moment.timestamp() * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"APT-{millis}-{suffix}"


def as_calendar_day(value: "date | datetime") -> date:
    """Truncate a datetime to its calendar day; dates pass through unchanged."""
    if isinstance(value, datetime):
        return value.date()
    return value


def combine(day: date, minutes: int) -> datetime:
    """Return the local datetime ``minutes`` after midnight on ``day``."""
    return datetime.combine(day, time(minutes // 60, minutes % 60))
