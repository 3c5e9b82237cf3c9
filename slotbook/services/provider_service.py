"""Provider administration and derived provider statistics."""

from datetime import datetime
from typing import Callable, Optional

from slotbook.logging_context import get_request_logger, set_request_id
from slotbook.persistence.appointment_store import AppointmentStore
from slotbook.persistence.directory import Directory
from slotbook.schemas.appointment_schema import ACTIVE_STATUSES, AppointmentStatus
from slotbook.schemas.directory_schema import Provider, ProviderApproval, ProviderStats
from slotbook.services.booking_service import Actor
from slotbook.services.events import AuditRecord, AuditSink, NotificationEvent, Notifier, Outbox

logger = get_request_logger(__name__)


class ProviderService:
    """Approve or reject provider registrations and report their booking counters."""

    def __init__(
        self,
        directory: Directory,
        appointments: AppointmentStore,
        notifier: Optional[Notifier] = None,
        audit: Optional[AuditSink] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.directory = directory
        self.appointments = appointments
        self.notifier = notifier
        self.audit = audit
        self.clock = clock

    def approve_provider(self, actor: Actor, provider_id: str) -> Provider:
        set_request_id()
        provider = self.directory.get_provider(provider_id)
        provider.approval = ProviderApproval.APPROVED
        provider.rejection_reason = None
        self.directory.save_provider(provider)
        logger.info("Provider %s approved by %s", provider_id, actor.user_id)
        self._emit(actor, provider, NotificationEvent.PROVIDER_APPROVED, "PROVIDER_APPROVED")
        return provider

    def reject_provider(self, actor: Actor, provider_id: str, reason: str = "") -> Provider:
        set_request_id()
        provider = self.directory.get_provider(provider_id)
        provider.approval = ProviderApproval.REJECTED
        provider.rejection_reason = reason or None
        self.directory.save_provider(provider)
        logger.info("Provider %s rejected by %s: %s", provider_id, actor.user_id, reason)
        self._emit(actor, provider, NotificationEvent.PROVIDER_REJECTED, "PROVIDER_REJECTED",
                   reason=reason)
        return provider

    def provider_stats(self, provider_id: str, now: Optional[datetime] = None) -> ProviderStats:
        """
        Counters computed from the provider's appointments at call time.

        Utilization is completed appointments over everything that was not
        cancelled or rejected, as a percentage rounded to one decimal.
        """
        self.directory.get_provider(provider_id)
        now = now or self.clock()
        appointments = self.appointments.for_provider(provider_id)

        def count(status: AppointmentStatus) -> int:
            return sum(1 for a in appointments if a.status == status)

        completed = count(AppointmentStatus.COMPLETED)
        cancelled = count(AppointmentStatus.CANCELLED)
        rejected = count(AppointmentStatus.REJECTED)
        considered = len(appointments) - cancelled - rejected
        return ProviderStats(
            total_appointments=len(appointments),
            completed_appointments=completed,
            cancelled_appointments=cancelled,
            pending_appointments=count(AppointmentStatus.REQUESTED),
            upcoming_appointments=sum(
                1 for a in appointments
                if a.status in ACTIVE_STATUSES and a.starts_at > now
            ),
            utilization_rate=round(100.0 * completed / considered, 1) if considered else 0.0,
        )

    def _emit(
        self,
        actor: Actor,
        provider: Provider,
        event: NotificationEvent,
        action: str,
        **details: str,
    ) -> None:
        outbox = Outbox(self.notifier, self.audit)
        outbox.notify(event, provider.email, {
            "providerId": provider.provider_id,
            "businessName": provider.business_name,
            **({"reason": details["reason"]} if details.get("reason") else {}),
        })
        outbox.audit(AuditRecord(
            action=action,
            actor_id=actor.user_id,
            entity_type="Provider",
            entity_id=provider.provider_id,
            timestamp=self.clock(),
            details=dict(details),
        ))
        outbox.flush()
