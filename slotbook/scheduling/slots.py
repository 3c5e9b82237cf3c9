"""
Slot generation.

Each window is cut into back-to-back slots of exactly the configured
duration, starting at the window start. A trailing remainder shorter than
the duration is dropped, never truncated.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from slotbook.errors import FormatError
from slotbook.scheduling.timeutils import minutes_to_time
from slotbook.schemas.availability_schema import TimeSlot, TimeWindow

logger = logging.getLogger(__name__)


def slots_for_window(window: TimeWindow, slot_duration: int) -> list[TimeSlot]:
    slots: list[TimeSlot] = []
    cursor = window.start_minutes
    while cursor + slot_duration <= window.end_minutes:
        slots.append(TimeSlot(
            start_time=minutes_to_time(cursor),
            end_time=minutes_to_time(cursor + slot_duration),
            duration=slot_duration,
        ))
        cursor += slot_duration
    return slots


def generate_slots(
    on: Optional[date],
    windows: Iterable[TimeWindow],
    slot_duration: int,
) -> list[TimeSlot]:
    """Enumerate candidate slots for a day, window by window, in window order."""
    if slot_duration <= 0:
        raise FormatError(f"Slot duration must be positive, got {slot_duration}")
    slots: list[TimeSlot] = []
    for window in windows:
        slots.extend(slots_for_window(window, slot_duration))
    logger.debug("Generated %d candidate slots for %s (duration %d)", len(slots), on, slot_duration)
    return slots
