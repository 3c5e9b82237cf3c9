"""
Reschedule bookkeeping.

Rescheduling is a compound change on one appointment: APPROVED ->
RESCHEDULED -> APPROVED (or REQUESTED when a late move needs re-approval).
Slot validation happens in the service before any of this runs; these
helpers only mutate the caller's working copy.
"""

import logging
from datetime import date, datetime, timedelta

from slotbook.errors import EligibilityError
from slotbook.lifecycle.state_machine import record_status
from slotbook.schemas.appointment_schema import (
    Appointment,
    AppointmentStatus,
    RescheduleHistoryEntry,
)

logger = logging.getLogger(__name__)

LATE_REAPPROVAL_REASON = "Late reschedule - requires re-approval"
REAPPROVED_REASON = "Rescheduled and approved"


def check_eligibility(appointment: Appointment, now: datetime) -> int:
    """
    Return how many reschedules remain.

    Raises:
        EligibilityError: If the appointment is not APPROVED, has used its
            reschedule budget, or has already started.
    """
    status = appointment.status.value
    if appointment.status != AppointmentStatus.APPROVED:
        raise EligibilityError(
            "Only approved appointments can be rescheduled",
            from_status=status,
            to_status=AppointmentStatus.RESCHEDULED.value,
        )
    if appointment.reschedule_count >= appointment.reschedule_limit:
        raise EligibilityError(
            f"Maximum reschedule limit ({appointment.reschedule_limit}) reached",
            from_status=status,
            to_status=AppointmentStatus.RESCHEDULED.value,
        )
    if appointment.starts_at <= now:
        raise EligibilityError(
            "Cannot reschedule past appointments",
            from_status=status,
            to_status=AppointmentStatus.RESCHEDULED.value,
        )
    return appointment.reschedule_limit - appointment.reschedule_count


def is_late_reschedule(appointment: Appointment, now: datetime, late_hours: int = 24) -> bool:
    """True if the current start is less than ``late_hours`` away."""
    return appointment.starts_at < now + timedelta(hours=late_hours)


def apply_reschedule(
    appointment: Appointment,
    new_date: date,
    new_start_time: str,
    new_end_time: str,
    rescheduled_by: str,
    at: datetime,
    reason: str = "",
    is_late: bool = False,
    require_reapproval: bool = False,
) -> Appointment:
    """Record the move on the working copy and re-enter APPROVED or REQUESTED."""
    record_status(
        appointment, AppointmentStatus.RESCHEDULED, rescheduled_by, at,
        reason or "Rescheduled by user",
    )
    appointment.reschedule_history.append(RescheduleHistoryEntry(
        previous_date=appointment.date,
        previous_start_time=appointment.start_time,
        previous_end_time=appointment.end_time,
        new_date=new_date,
        new_start_time=new_start_time,
        new_end_time=new_end_time,
        rescheduled_by=rescheduled_by,
        rescheduled_at=at,
        reason=reason or "No reason provided",
        is_late_reschedule=is_late,
    ))
    appointment.reschedule_count += 1
    appointment.date = new_date
    appointment.start_time = new_start_time
    appointment.end_time = new_end_time
    appointment.reminder_sent = False
    appointment.reminder_sent_at = None

    if is_late and require_reapproval:
        record_status(appointment, AppointmentStatus.REQUESTED, rescheduled_by, at,
                      LATE_REAPPROVAL_REASON)
    else:
        record_status(appointment, AppointmentStatus.APPROVED, rescheduled_by, at,
                      REAPPROVED_REASON)

    logger.info(
        "Appointment %s rescheduled to %s %s-%s (late=%s, status=%s)",
        appointment.appointment_id, new_date, new_start_time, new_end_time,
        is_late, appointment.status.value,
    )
    return appointment
