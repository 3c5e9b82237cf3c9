"""Daily appointment ceilings per provider and per end user."""

import logging
from datetime import date

from slotbook.errors import CapacityError
from slotbook.persistence.appointment_store import AppointmentStore
from slotbook.utils import as_calendar_day

logger = logging.getLogger(__name__)


def check_daily_limits(
    appointments: AppointmentStore,
    provider_id: str,
    user_id: str,
    on: date,
    max_provider_per_day: int,
    max_user_per_day: int,
) -> None:
    """Raise CapacityError if either party already has ``max`` active bookings that day."""
    day = as_calendar_day(on)

    provider_count = len(appointments.active_for_provider(provider_id, day))
    if provider_count >= max_provider_per_day:
        logger.info("Provider %s at daily ceiling (%d) on %s", provider_id, provider_count, day)
        raise CapacityError(
            "Provider has reached maximum appointments for this day", scope="provider"
        )

    user_count = len(appointments.active_for_user(user_id, day))
    if user_count >= max_user_per_day:
        logger.info("User %s at daily ceiling (%d) on %s", user_id, user_count, day)
        raise CapacityError(
            "User has reached maximum appointments for this day", scope="user"
        )
