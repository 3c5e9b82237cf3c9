"""
Booking orchestration.

BookingService runs each request-level operation (book, change status,
cancel, reschedule) end to end: parse and check input, hold the
provider/day and user/day locks across check -> capacity -> write, commit
the working copy in one step, then flush notifications and audit records.
Nothing is emitted for an operation that did not commit.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Optional, TypeVar

from pydantic import ValidationError

from slotbook.config import AppConfig, settings
from slotbook.errors import (
    ConcurrencyConflict,
    FormatError,
    NotFoundError,
    OverlapError,
    SlotUnavailableError,
    TransitionError,
)
from slotbook.lifecycle.reschedule import apply_reschedule, check_eligibility, is_late_reschedule
from slotbook.lifecycle.state_machine import apply_transition, auto_transition_status
from slotbook.logging_context import get_request_logger, set_request_id
from slotbook.persistence.appointment_store import AppointmentStore
from slotbook.persistence.directory import Directory
from slotbook.persistence.locks import KeyedLocks, provider_day_key, user_day_key
from slotbook.scheduling.availability import AvailabilityRuleStore
from slotbook.scheduling.capacity import check_daily_limits
from slotbook.scheduling.conflicts import ConflictChecker
from slotbook.scheduling.timeutils import normalize_time, parse_date, time_to_minutes
from slotbook.schemas.appointment_schema import (
    Appointment,
    AppointmentStatus,
    Role,
    ServiceDetails,
    StatusHistoryEntry,
)
from slotbook.schemas.availability_schema import DayAvailability, SlotCheck
from slotbook.schemas.directory_schema import EndUser, Provider
from slotbook.services.events import (
    AuditRecord,
    AuditSink,
    NotificationEvent,
    Notifier,
    Outbox,
)
from slotbook.utils import generate_appointment_id

logger = get_request_logger(__name__)

T = TypeVar("T")

REQUESTED_REASON = "Appointment requested by user"

_STATUS_EVENTS = {
    AppointmentStatus.APPROVED: NotificationEvent.APPOINTMENT_APPROVED,
    AppointmentStatus.REJECTED: NotificationEvent.APPOINTMENT_REJECTED,
    AppointmentStatus.COMPLETED: NotificationEvent.APPOINTMENT_COMPLETED,
    AppointmentStatus.CANCELLED: NotificationEvent.APPOINTMENT_CANCELLED,
}


@dataclass(frozen=True)
class Actor:
    """Identity supplied by the authorization layer. Trusted as given."""
    user_id: str
    role: Role


SYSTEM_ACTOR = Actor(user_id="system", role=Role.SYSTEM_ADMIN)


@dataclass
class RescheduleResult:
    appointment: Appointment
    is_late_reschedule: bool
    remaining_reschedules: int


def parse_slot(on: "str | date | datetime", start_time: str, end_time: str) -> tuple[date, str, str]:
    """Normalize a requested date and HH:mm interval, rejecting malformed or empty ranges."""
    day = parse_date(on)
    start, end = normalize_time(start_time), normalize_time(end_time)
    if time_to_minutes(start) >= time_to_minutes(end):
        raise FormatError(f"Start time {start} must be before end time {end}")
    return day, start, end


class BookingService:
    """Request-level booking operations over the rule store, appointment store and directory."""

    def __init__(
        self,
        rules: AvailabilityRuleStore,
        appointments: AppointmentStore,
        directory: Directory,
        notifier: Optional[Notifier] = None,
        audit: Optional[AuditSink] = None,
        locks: Optional[KeyedLocks] = None,
        config: Optional[AppConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.rules = rules
        self.appointments = appointments
        self.directory = directory
        self.checker = ConflictChecker(rules, appointments)
        self.notifier = notifier
        self.audit = audit
        self.locks = locks if locks is not None else KeyedLocks()
        self.config = config or settings
        self.clock = clock

    # ---- availability ---------------------------------------------------

    def get_available_slots(
        self, provider_id: str, on: "str | date", slot_duration: Optional[int] = None
    ) -> DayAvailability:
        provider = self.directory.get_provider(provider_id)
        return self.checker.compute_available_slots(
            provider_id, parse_date(on), slot_duration or provider.slot_duration
        )

    def get_availability_range(
        self,
        provider_id: str,
        start: "str | date",
        end: "str | date",
        slot_duration: Optional[int] = None,
    ) -> list[DayAvailability]:
        provider = self.directory.get_provider(provider_id)
        start_day, end_day = parse_date(start), parse_date(end)
        if end_day < start_day:
            raise FormatError(f"Range end {end_day} is before start {start_day}")
        return self.checker.compute_availability_range(
            provider_id, start_day, end_day, slot_duration or provider.slot_duration
        )

    # ---- booking --------------------------------------------------------

    def create_appointment(
        self,
        actor: Actor,
        provider_id: str,
        on: "str | date",
        start_time: str,
        end_time: str,
        notes: str = "",
    ) -> Appointment:
        """
        Book a slot for ``actor`` with a provider.

        The new appointment starts in REQUESTED with one history entry.

        Raises:
            FormatError: Malformed date or times, or start not before end.
            SlotUnavailableError: Blocked date, no rule that day, or outside every window.
            OverlapError: The provider or the user already holds an overlapping booking.
            CapacityError: The provider or the user is at the daily ceiling.
            NotFoundError: Unknown provider or user.
        """
        set_request_id()
        day, start, end = parse_slot(on, start_time, end_time)
        provider = self.directory.get_provider(provider_id)
        user = self.directory.get_user(actor.user_id)

        def attempt() -> Appointment:
            now = self.clock()
            with self.locks.hold(provider_day_key(provider_id, day), user_day_key(user.user_id, day)):
                self._ensure_bookable(provider_id, user.user_id, day, start, end)
                check_daily_limits(
                    self.appointments, provider_id, user.user_id, day,
                    provider.max_appointments_per_day, user.max_appointments_per_day,
                )
                try:
                    appointment = Appointment(
                        appointment_id=generate_appointment_id(now),
                        user_id=user.user_id,
                        provider_id=provider_id,
                        date=day,
                        start_time=start,
                        end_time=end,
                        notes=notes,
                        service_details=ServiceDetails(
                            service_name=provider.business_name,
                            price=provider.base_price,
                            duration=time_to_minutes(end) - time_to_minutes(start),
                        ),
                        status_history=[StatusHistoryEntry(
                            status=AppointmentStatus.REQUESTED,
                            changed_by=user.user_id,
                            changed_at=now,
                            reason=REQUESTED_REASON,
                        )],
                        reschedule_limit=self.config.booking.reschedule_limit,
                        created_at=now,
                        updated_at=now,
                    )
                except ValidationError as exc:
                    raise FormatError(str(exc)) from None
                return self.appointments.insert(appointment)

        created = self._retry_on_conflict("create_appointment", attempt)
        logger.info(
            "Appointment %s requested: provider=%s user=%s %s %s-%s",
            created.appointment_id, provider_id, user.user_id, day, start, end,
        )

        outbox = self._outbox()
        payload = self._payload(created, provider, user)
        outbox.notify(NotificationEvent.BOOKING_CONFIRMATION, user.email, payload)
        outbox.notify(NotificationEvent.NEW_APPOINTMENT_REQUEST, provider.email, payload)
        outbox.audit(self._audit_record("APPOINTMENT_CREATED", actor, created))
        outbox.flush()
        return created

    # ---- status changes -------------------------------------------------

    def update_status(
        self,
        actor: Actor,
        appointment_id: str,
        new_status: "AppointmentStatus | str",
        reason: str = "",
    ) -> Appointment:
        """
        Move an appointment to ``new_status`` on behalf of ``actor``.

        RESCHEDULED cannot be requested here; use reschedule_appointment.
        A lost compare-and-swap is retried after re-reading the record.
        """
        set_request_id()
        try:
            target = AppointmentStatus(new_status)
        except ValueError:
            raise TransitionError(f"Unknown status {new_status!r}", to_status=str(new_status)) from None
        if target == AppointmentStatus.RESCHEDULED:
            raise TransitionError(
                "Use reschedule to move an appointment",
                to_status=target.value,
            )

        previous: dict[str, AppointmentStatus] = {}

        def attempt() -> Appointment:
            appointment = self._load_for(actor, appointment_id)
            previous["status"] = appointment.status
            apply_transition(appointment, target, actor.user_id, actor.role, self.clock(), reason)
            return self.appointments.compare_and_swap(appointment)

        updated = self._retry_on_conflict("update_status", attempt)
        logger.info(
            "Appointment %s: %s -> %s by %s (%s)",
            appointment_id, previous["status"].value, target.value,
            actor.user_id, actor.role.value,
        )
        self._emit_status_change(actor, updated, previous["status"], reason)
        return updated

    def cancel_appointment(self, actor: Actor, appointment_id: str, reason: str = "") -> Appointment:
        return self.update_status(actor, appointment_id, AppointmentStatus.CANCELLED, reason)

    def apply_auto_transitions(self, now: Optional[datetime] = None) -> list[Appointment]:
        """Start appointments whose time has come and complete those that have ended."""
        set_request_id()
        now = now or self.clock()
        changed = []
        candidates = self.appointments.with_status(
            [AppointmentStatus.APPROVED, AppointmentStatus.IN_PROGRESS]
        )
        for appointment in candidates:
            step = auto_transition_status(appointment, now)
            if step is None:
                continue
            target, reason = step
            previous = appointment.status
            try:
                apply_transition(
                    appointment, target, SYSTEM_ACTOR.user_id, SYSTEM_ACTOR.role, now, reason
                )
                updated = self.appointments.compare_and_swap(appointment)
            except ConcurrencyConflict:
                logger.info("Skipping auto transition of %s: changed concurrently",
                            appointment.appointment_id)
                continue
            self._emit_status_change(SYSTEM_ACTOR, updated, previous, reason)
            changed.append(updated)
        if changed:
            logger.info("Auto-transitioned %d appointment(s)", len(changed))
        return changed

    # ---- reschedule -----------------------------------------------------

    def reschedule_appointment(
        self,
        actor: Actor,
        appointment_id: str,
        new_date: "str | date",
        new_start_time: str,
        new_end_time: str,
        reason: str = "",
    ) -> RescheduleResult:
        """
        Move an APPROVED appointment to a new slot.

        Eligibility is checked before the new slot is validated. The move
        writes RESCHEDULED and then APPROVED (or REQUESTED for a late move
        at a provider that requires re-approval) in one commit.

        Raises:
            EligibilityError: Not APPROVED, reschedule limit used, or already started.
            SlotUnavailableError / OverlapError: The new slot cannot be booked.
        """
        set_request_id()
        day, start, end = parse_slot(new_date, new_start_time, new_end_time)
        if actor.role == Role.SERVICE_PROVIDER:
            raise TransitionError(
                "Only the booking user or an administrator can reschedule",
                from_status=AppointmentStatus.APPROVED.value,
                to_status=AppointmentStatus.RESCHEDULED.value,
                required_role=f"{Role.END_USER.value}, {Role.SYSTEM_ADMIN.value}",
            )

        context: dict[str, Any] = {}

        def attempt() -> Appointment:
            appointment = self._load_for(actor, appointment_id)
            now = self.clock()
            remaining = check_eligibility(appointment, now)
            late = is_late_reschedule(appointment, now, self.config.booking.late_reschedule_hours)
            provider = self.directory.get_provider(appointment.provider_id)
            context.update(
                remaining=remaining - 1,
                late=late,
                provider=provider,
                previous=(appointment.date, appointment.start_time, appointment.end_time),
            )
            with self.locks.hold(
                provider_day_key(appointment.provider_id, day),
                user_day_key(appointment.user_id, day),
            ):
                self._ensure_bookable(
                    appointment.provider_id, appointment.user_id, day, start, end,
                    exclude_appointment_id=appointment.appointment_id,
                )
                apply_reschedule(
                    appointment, day, start, end,
                    rescheduled_by=actor.user_id,
                    at=now,
                    reason=reason,
                    is_late=late,
                    require_reapproval=provider.require_approval_for_late_reschedule,
                )
                return self.appointments.compare_and_swap(appointment)

        updated = self._retry_on_conflict("reschedule_appointment", attempt)
        provider: Provider = context["provider"]
        user = self.directory.get_user(updated.user_id)
        previous_date, previous_start, previous_end = context["previous"]

        outbox = self._outbox()
        payload = self._payload(
            updated, provider, user,
            previousDate=previous_date.isoformat(),
            previousStartTime=previous_start,
            previousEndTime=previous_end,
            isLateReschedule=context["late"],
            status=updated.status.value,
        )
        outbox.notify(NotificationEvent.APPOINTMENT_RESCHEDULED, user.email, payload)
        outbox.notify(NotificationEvent.APPOINTMENT_RESCHEDULED, provider.email, payload)
        outbox.audit(self._audit_record(
            "APPOINTMENT_RESCHEDULED", actor, updated,
            previous_date=previous_date.isoformat(),
            previous_start_time=previous_start,
            is_late_reschedule=context["late"],
        ))
        outbox.flush()
        return RescheduleResult(
            appointment=updated,
            is_late_reschedule=context["late"],
            remaining_reschedules=context["remaining"],
        )

    # ---- reads ----------------------------------------------------------

    def get_appointment(self, actor: Actor, appointment_id: str) -> Appointment:
        return self._load_for(actor, appointment_id)

    def list_appointments(
        self, actor: Actor, status: Optional[AppointmentStatus] = None
    ) -> list[Appointment]:
        """Appointments visible to ``actor``, optionally filtered by status."""
        if actor.role == Role.END_USER:
            found = self.appointments.for_user(actor.user_id)
        elif actor.role == Role.SERVICE_PROVIDER:
            provider = self.directory.provider_for_user(actor.user_id)
            found = self.appointments.for_provider(provider.provider_id) if provider else []
        else:
            found = self.appointments.find(lambda a: True)
        if status is not None:
            found = [a for a in found if a.status == AppointmentStatus(status)]
        return found

    # ---- internals ------------------------------------------------------

    def _ensure_bookable(
        self,
        provider_id: str,
        user_id: str,
        day: date,
        start: str,
        end: str,
        exclude_appointment_id: Optional[str] = None,
    ) -> None:
        validation = self.checker.validate_slot_availability(
            provider_id, day, start, end, exclude_appointment_id
        )
        if not validation.available:
            logger.info("Slot %s %s-%s rejected for %s: %s",
                        day, start, end, provider_id, validation.reason)
            if validation.code == SlotCheck.ALREADY_BOOKED:
                raise OverlapError(validation.reason)
            raise SlotUnavailableError(validation.reason, validation.code.value)
        if self.checker.check_overlap(provider_id, user_id, day, start, end, exclude_appointment_id):
            logger.info("Slot %s %s-%s overlaps an existing booking of user %s",
                        day, start, end, user_id)
            raise OverlapError("Time slot conflicts with an existing appointment")

    def _load_for(self, actor: Actor, appointment_id: str) -> Appointment:
        """Fetch an appointment the actor is allowed to see; others read as not found."""
        appointment = self.appointments.get(appointment_id)
        if actor.role == Role.END_USER and appointment.user_id != actor.user_id:
            raise NotFoundError("Appointment", appointment_id)
        if actor.role == Role.SERVICE_PROVIDER:
            provider = self.directory.get_provider(appointment.provider_id)
            if provider.user_id != actor.user_id:
                raise NotFoundError("Appointment", appointment_id)
        return appointment

    def _retry_on_conflict(self, operation: str, attempt: Callable[[], T]) -> T:
        retries = self.config.booking.conflict_retries
        for attempt_no in range(retries + 1):
            try:
                return attempt()
            except ConcurrencyConflict as exc:
                if attempt_no == retries:
                    logger.warning("%s gave up after %d conflict(s): %s",
                                   operation, attempt_no + 1, exc)
                    raise
                logger.info("%s lost a race, retrying: %s", operation, exc)
        raise AssertionError("unreachable")

    def _emit_status_change(
        self,
        actor: Actor,
        appointment: Appointment,
        previous: AppointmentStatus,
        reason: str,
    ) -> None:
        outbox = self._outbox()
        event = _STATUS_EVENTS.get(appointment.status)
        if event is not None:
            provider = self.directory.get_provider(appointment.provider_id)
            user = self.directory.get_user(appointment.user_id)
            payload = self._payload(appointment, provider, user, reason=reason)
            # A user's own cancellation also tells the provider; the user always gets a copy.
            if event == NotificationEvent.APPOINTMENT_CANCELLED and actor.role == Role.END_USER:
                outbox.notify(event, provider.email, payload)
            outbox.notify(event, user.email, payload)
        outbox.audit(self._audit_record(
            "APPOINTMENT_STATUS_CHANGED", actor, appointment,
            from_status=previous.value, to_status=appointment.status.value,
        ))
        outbox.flush()

    def _outbox(self) -> Outbox:
        return Outbox(self.notifier, self.audit)

    def _audit_record(
        self, action: str, actor: Actor, appointment: Appointment, **details: Any
    ) -> AuditRecord:
        return AuditRecord(
            action=action,
            actor_id=actor.user_id,
            entity_type="Appointment",
            entity_id=appointment.appointment_id,
            timestamp=self.clock(),
            details=details,
        )

    @staticmethod
    def _payload(
        appointment: Appointment, provider: Provider, user: EndUser, **extra: Any
    ) -> dict[str, Any]:
        payload = {
            "appointmentId": appointment.appointment_id,
            "date": appointment.date.isoformat(),
            "startTime": appointment.start_time,
            "endTime": appointment.end_time,
            "providerName": provider.business_name,
            "userName": user.name,
        }
        payload.update(extra)
        return payload
