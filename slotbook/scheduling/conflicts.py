"""
Booking conflict checker.

Turns a provider's rules into bookable slots for a day, subtracts time held
by active appointments (REQUESTED, APPROVED, IN_PROGRESS), and validates a
specific requested interval before it is committed.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from slotbook.errors import FormatError
from slotbook.persistence.appointment_store import AppointmentStore
from slotbook.scheduling.availability import AvailabilityRuleStore
from slotbook.scheduling.slots import generate_slots
from slotbook.scheduling.timeutils import (
    day_of_week,
    intervals_overlap,
    is_within_window,
    time_to_minutes,
)
from slotbook.schemas.appointment_schema import Appointment
from slotbook.schemas.availability_schema import (
    DayAvailability,
    SlotCheck,
    SlotValidation,
)
from slotbook.utils import as_calendar_day

logger = logging.getLogger(__name__)

MSG_DATE_BLOCKED = "This date is blocked (holiday or exception)"
MSG_DAY_UNAVAILABLE = "Provider is not available on this day"
MSG_SLOTS_AVAILABLE = "Slots available"
MSG_ALL_BOOKED = "All slots are booked"


def _first_overlap(
    appointments: list[Appointment], start_time: str, end_time: str
) -> Optional[Appointment]:
    start, end = time_to_minutes(start_time), time_to_minutes(end_time)
    for appointment in appointments:
        if intervals_overlap(
            start, end,
            time_to_minutes(appointment.start_time), time_to_minutes(appointment.end_time),
        ):
            return appointment
    return None


class ConflictChecker:
    """Slot availability and double-booking guards over the rule and appointment stores."""

    def __init__(self, rules: AvailabilityRuleStore, appointments: AppointmentStore) -> None:
        self.rules = rules
        self.appointments = appointments

    def compute_available_slots(
        self, provider_id: str, on: date, slot_duration: int
    ) -> DayAvailability:
        day = as_calendar_day(on)
        weekday = day_of_week(day)

        if self.rules.is_exception_date(provider_id, day):
            return DayAvailability(date=day, day_of_week=weekday, message=MSG_DATE_BLOCKED)

        rule = self.rules.get_active_rule(provider_id, weekday)
        if rule is None or not rule.windows:
            return DayAvailability(date=day, day_of_week=weekday, message=MSG_DAY_UNAVAILABLE)

        candidates = generate_slots(day, rule.windows, slot_duration)
        booked = self.appointments.active_for_provider(provider_id, day)
        available = [
            slot for slot in candidates
            if _first_overlap(booked, slot.start_time, slot.end_time) is None
        ]

        logger.debug(
            "Availability %s %s: %d candidates, %d free",
            provider_id, day, len(candidates), len(available),
        )
        return DayAvailability(
            date=day,
            day_of_week=weekday,
            slots=available,
            total_count=len(candidates),
            booked_count=len(candidates) - len(available),
            message=MSG_SLOTS_AVAILABLE if available else MSG_ALL_BOOKED,
        )

    def compute_availability_range(
        self, provider_id: str, start: date, end: date, slot_duration: int
    ) -> list[DayAvailability]:
        """One DayAvailability per calendar day in [start, end]."""
        results = []
        day, last = as_calendar_day(start), as_calendar_day(end)
        while day <= last:
            results.append(self.compute_available_slots(provider_id, day, slot_duration))
            day += timedelta(days=1)
        return results

    def validate_slot_availability(
        self,
        provider_id: str,
        on: date,
        start_time: str,
        end_time: str,
        exclude_appointment_id: Optional[str] = None,
    ) -> SlotValidation:
        """Check a requested interval; the first failing check short-circuits.

        Raises:
            FormatError: If a time is malformed or the interval is empty or inverted.
        """
        if time_to_minutes(start_time) >= time_to_minutes(end_time):
            raise FormatError(f"Start time {start_time} must be before end time {end_time}")
        day = as_calendar_day(on)

        if self.rules.is_exception_date(provider_id, day):
            return SlotValidation(available=False, reason="Date is blocked",
                                  code=SlotCheck.DATE_BLOCKED)

        rule = self.rules.get_active_rule(provider_id, day_of_week(day))
        if rule is None:
            return SlotValidation(available=False, reason="Provider not available on this day",
                                  code=SlotCheck.DAY_UNAVAILABLE)

        if not any(
            is_within_window(start_time, end_time, w.start_time, w.end_time)
            for w in rule.windows
        ):
            return SlotValidation(
                available=False,
                reason="Time not within provider availability window",
                code=SlotCheck.OUTSIDE_WINDOW,
            )

        conflict = self.find_provider_conflict(
            provider_id, day, start_time, end_time, exclude_appointment_id
        )
        if conflict is not None:
            return SlotValidation(available=False, reason="Time slot already booked",
                                  code=SlotCheck.ALREADY_BOOKED,
                                  conflict_id=conflict.appointment_id)

        return SlotValidation(available=True, reason="Slot is available", code=SlotCheck.AVAILABLE)

    def find_provider_conflict(
        self,
        provider_id: str,
        on: date,
        start_time: str,
        end_time: str,
        exclude_appointment_id: Optional[str] = None,
    ) -> Optional[Appointment]:
        booked = self.appointments.active_for_provider(
            provider_id, as_calendar_day(on), exclude_appointment_id
        )
        return _first_overlap(booked, start_time, end_time)

    def find_user_conflict(
        self,
        user_id: str,
        on: date,
        start_time: str,
        end_time: str,
        exclude_appointment_id: Optional[str] = None,
    ) -> Optional[Appointment]:
        booked = self.appointments.active_for_user(
            user_id, as_calendar_day(on), exclude_appointment_id
        )
        return _first_overlap(booked, start_time, end_time)

    def has_provider_conflict(self, provider_id: str, on: date, start_time: str, end_time: str,
                              exclude_appointment_id: Optional[str] = None) -> bool:
        return self.find_provider_conflict(
            provider_id, on, start_time, end_time, exclude_appointment_id
        ) is not None

    def has_user_conflict(self, user_id: str, on: date, start_time: str, end_time: str,
                          exclude_appointment_id: Optional[str] = None) -> bool:
        return self.find_user_conflict(
            user_id, on, start_time, end_time, exclude_appointment_id
        ) is not None

    def check_overlap(
        self,
        provider_id: str,
        user_id: str,
        on: date,
        start_time: str,
        end_time: str,
        exclude_appointment_id: Optional[str] = None,
    ) -> bool:
        """True if the interval collides with the provider's or the user's active bookings.

        Only authoritative while the caller holds the provider/day and user/day locks.
        """
        return (
            self.has_provider_conflict(provider_id, on, start_time, end_time, exclude_appointment_id)
            or self.has_user_conflict(user_id, on, start_time, end_time, exclude_appointment_id)
        )
