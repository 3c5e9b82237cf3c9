from slotbook.services.booking_service import SYSTEM_ACTOR, Actor, BookingService, RescheduleResult
from slotbook.services.events import (
    AuditRecord,
    InMemoryAuditLog,
    NotificationEvent,
    Outbox,
)
from slotbook.services.notifications import NotificationQueue
from slotbook.services.provider_service import ProviderService
from slotbook.services.reminders import ReminderScheduler

__all__ = [
    "Actor",
    "SYSTEM_ACTOR",
    "BookingService",
    "RescheduleResult",
    "AuditRecord",
    "InMemoryAuditLog",
    "NotificationEvent",
    "Outbox",
    "NotificationQueue",
    "ProviderService",
    "ReminderScheduler",
]
