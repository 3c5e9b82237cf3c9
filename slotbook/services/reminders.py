"""
Background reminder scheduler.

Each scan finds APPROVED appointments starting inside the configured lead
window whose reminder has not gone out. The reminder_sent flag is claimed
atomically in the store before anything is enqueued, so overlapping scans
(or a scan racing a manual trigger) send at most one reminder. The claim only
succeeds if the appointment is unchanged since the scan read it. If no
recipient could be queued the claim is released and the next scan tries
again; a partial delivery keeps it.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

from slotbook.config import ReminderConfig, settings
from slotbook.errors import EligibilityError
from slotbook.logging_context import get_request_logger, request_scope
from slotbook.persistence.appointment_store import AppointmentStore
from slotbook.persistence.directory import Directory
from slotbook.schemas.appointment_schema import Appointment, AppointmentStatus
from slotbook.services.events import NotificationEvent, Notifier

logger = get_request_logger(__name__)


class ReminderScheduler:
    def __init__(
        self,
        appointments: AppointmentStore,
        directory: Directory,
        notifier: Notifier,
        config: Optional[ReminderConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.appointments = appointments
        self.directory = directory
        self.notifier = notifier
        self.config = config or settings.reminders
        self.clock = clock

    def due_appointments(self, now: datetime) -> list[Appointment]:
        earliest = now + timedelta(minutes=self.config.lead_min_minutes)
        latest = now + timedelta(minutes=self.config.lead_max_minutes)
        return self.appointments.find(
            lambda a: a.status == AppointmentStatus.APPROVED
            and not a.reminder_sent
            and earliest <= a.starts_at <= latest
        )

    def scan_once(self, now: Optional[datetime] = None) -> int:
        """Send reminders for every due appointment. Returns how many were sent."""
        with request_scope():
            now = now or self.clock()
            sent = 0
            for appointment in self.due_appointments(now):
                if not self.appointments.claim_reminder(
                    appointment.appointment_id, now, expected_version=appointment.version
                ):
                    continue
                try:
                    self._deliver(appointment)
                except Exception:
                    logger.exception("Reminder for %s failed; releasing claim",
                                     appointment.appointment_id)
                    self.appointments.release_reminder(appointment.appointment_id)
                    continue
                sent += 1
            if sent:
                logger.info("Sent %d reminder(s)", sent)
            return sent

    def trigger_manual_reminder(self, appointment_id: str) -> Appointment:
        """Send a reminder now, regardless of the lead window or an earlier reminder."""
        with request_scope():
            appointment = self.appointments.get(appointment_id)
            if appointment.status != AppointmentStatus.APPROVED:
                raise EligibilityError(
                    "Only approved appointments can have reminders",
                    from_status=appointment.status.value,
                )
            self._deliver(appointment)
            self.appointments.claim_reminder(appointment_id, self.clock())
            logger.info("Manual reminder sent for %s", appointment_id)
            return self.appointments.get(appointment_id)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until ``stop_event`` is set. A failing scan is logged and the loop continues."""
        logger.info("Reminder loop started (every %ss)", self.config.poll_seconds)
        while not stop_event.is_set():
            try:
                self.scan_once()
            except Exception:
                logger.exception("Reminder scan failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.config.poll_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Reminder loop stopped")

    def _deliver(self, appointment: Appointment) -> int:
        """Enqueue the reminder for the user and the provider.

        Each recipient is tried on its own. Raises the first error only when
        no recipient got the reminder; a partial delivery keeps the claim so
        the recipients already reached are not reminded twice.
        """
        provider = self.directory.get_provider(appointment.provider_id)
        user = self.directory.get_user(appointment.user_id)
        payload = {
            "appointmentId": appointment.appointment_id,
            "date": appointment.date.isoformat(),
            "startTime": appointment.start_time,
            "endTime": appointment.end_time,
            "providerName": provider.business_name,
            "userName": user.name,
            "location": provider.location or "TBD",
        }
        delivered = 0
        errors: list[Exception] = []
        for recipient in (user.email, provider.email):
            try:
                self.notifier.enqueue(NotificationEvent.APPOINTMENT_REMINDER, recipient, payload)
            except Exception as exc:
                errors.append(exc)
                logger.warning("Reminder for %s to %s not queued: %s",
                               appointment.appointment_id, recipient, exc)
                continue
            delivered += 1
        if errors and not delivered:
            raise errors[0]
        return delivered
