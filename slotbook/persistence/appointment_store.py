"""
Thread-safe in-memory appointment store.

Reads hand out deep copies, so callers mutate a private working copy and
commit it in one step. Updates are compare-and-swap on ``version``: a writer
holding a stale copy gets ConcurrencyConflict instead of overwriting a
concurrent change.
"""

import logging
import threading
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from slotbook.errors import ConcurrencyConflict, NotFoundError
from slotbook.schemas.appointment_schema import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
)

logger = logging.getLogger(__name__)


class AppointmentStore:
    """Appointment persistence with optimistic versioning."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._appointments: dict[str, Appointment] = {}

    # ---- writes -------------------------------------------------------

    def insert(self, appointment: Appointment) -> Appointment:
        """Store a new appointment. The id must be unique."""
        with self._lock:
            if appointment.appointment_id in self._appointments:
                raise ConcurrencyConflict(
                    f"Appointment id {appointment.appointment_id} already exists"
                )
            stored = appointment.model_copy(deep=True)
            stored.version = 1
            self._appointments[stored.appointment_id] = stored
            logger.debug("Inserted appointment %s", stored.appointment_id)
            return stored.model_copy(deep=True)

    def compare_and_swap(self, appointment: Appointment) -> Appointment:
        """Replace the stored record if its version still matches the caller's copy.

        Raises:
            NotFoundError: If the appointment does not exist.
            ConcurrencyConflict: If another writer committed first.
        """
        with self._lock:
            current = self._appointments.get(appointment.appointment_id)
            if current is None:
                raise NotFoundError("Appointment", appointment.appointment_id)
            if current.version != appointment.version:
                raise ConcurrencyConflict(
                    f"Appointment {appointment.appointment_id} changed concurrently "
                    f"(expected version {appointment.version}, found {current.version})"
                )
            stored = appointment.model_copy(deep=True)
            stored.version = current.version + 1
            self._appointments[stored.appointment_id] = stored
            return stored.model_copy(deep=True)

    def claim_reminder(
        self, appointment_id: str, at: datetime, expected_version: Optional[int] = None
    ) -> bool:
        """Atomically flip reminder_sent from False to True.

        With ``expected_version`` the claim also fails when the appointment
        changed after the caller read it (a reschedule or cancellation), so
        a reminder is never sent for a time or status the caller did not see.
        Returns False when the claim is not taken.
        """
        with self._lock:
            current = self._appointments.get(appointment_id)
            if current is None:
                raise NotFoundError("Appointment", appointment_id)
            if current.reminder_sent:
                return False
            if expected_version is not None and current.version != expected_version:
                logger.info("Reminder claim for %s skipped: version %d, expected %d",
                            appointment_id, current.version, expected_version)
                return False
            current.reminder_sent = True
            current.reminder_sent_at = at
            current.version += 1
            return True

    def release_reminder(self, appointment_id: str) -> None:
        with self._lock:
            current = self._appointments.get(appointment_id)
            if current is None:
                return
            current.reminder_sent = False
            current.reminder_sent_at = None
            current.version += 1

    # ---- reads --------------------------------------------------------

    def get(self, appointment_id: str) -> Appointment:
        with self._lock:
            current = self._appointments.get(appointment_id)
            if current is None:
                raise NotFoundError("Appointment", appointment_id)
            return current.model_copy(deep=True)

    def find(
        self,
        predicate: Callable[[Appointment], bool],
    ) -> list[Appointment]:
        with self._lock:
            matches = [a.model_copy(deep=True) for a in self._appointments.values() if predicate(a)]
        return sorted(matches, key=lambda a: (a.date, a.start_time, a.appointment_id))

    def active_for_provider(
        self, provider_id: str, day: date, exclude_id: Optional[str] = None
    ) -> list[Appointment]:
        return self.find(
            lambda a: a.provider_id == provider_id
            and a.date == day
            and a.status in ACTIVE_STATUSES
            and a.appointment_id != exclude_id
        )

    def active_for_user(
        self, user_id: str, day: date, exclude_id: Optional[str] = None
    ) -> list[Appointment]:
        return self.find(
            lambda a: a.user_id == user_id
            and a.date == day
            and a.status in ACTIVE_STATUSES
            and a.appointment_id != exclude_id
        )

    def with_status(self, statuses: Iterable[AppointmentStatus]) -> list[Appointment]:
        wanted = frozenset(statuses)
        return self.find(lambda a: a.status in wanted)

    def for_provider(self, provider_id: str) -> list[Appointment]:
        return self.find(lambda a: a.provider_id == provider_id)

    def for_user(self, user_id: str) -> list[Appointment]:
        return self.find(lambda a: a.user_id == user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._appointments)

    def reset(self) -> None:
        """Clear all appointments. Used by test fixtures for isolation."""
        with self._lock:
            self._appointments.clear()
