"""
Outbound events emitted by booking operations.

Operations collect notifications and audit records in an Outbox while they
run and flush it only after their write has committed. Delivery failures are
logged and swallowed; they never change the outcome of the operation.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from slotbook.logging_context import get_request_logger

logger = get_request_logger(__name__)


class NotificationEvent(str, Enum):
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    APPOINTMENT_APPROVED = "APPOINTMENT_APPROVED"
    APPOINTMENT_REJECTED = "APPOINTMENT_REJECTED"
    APPOINTMENT_CANCELLED = "APPOINTMENT_CANCELLED"
    APPOINTMENT_COMPLETED = "APPOINTMENT_COMPLETED"
    APPOINTMENT_RESCHEDULED = "APPOINTMENT_RESCHEDULED"
    NEW_APPOINTMENT_REQUEST = "NEW_APPOINTMENT_REQUEST"
    PROVIDER_APPROVED = "PROVIDER_APPROVED"
    PROVIDER_REJECTED = "PROVIDER_REJECTED"
    APPOINTMENT_REMINDER = "APPOINTMENT_REMINDER"


class Notifier(Protocol):
    def enqueue(self, event_type: NotificationEvent, recipient: str, payload: dict[str, Any]) -> Any:
        ...


@dataclass
class AuditRecord:
    action: str
    actor_id: str
    entity_type: str
    entity_id: str
    timestamp: datetime
    details: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    def record(self, entry: AuditRecord) -> None:
        ...


class InMemoryAuditLog:
    """Append-only audit trail kept in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[AuditRecord] = []

    def record(self, entry: AuditRecord) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self, entity_id: Optional[str] = None) -> list[AuditRecord]:
        with self._lock:
            return [e for e in self._entries if entity_id is None or e.entity_id == entity_id]


@dataclass
class OutboundMessage:
    event_type: NotificationEvent
    recipient: str
    payload: dict[str, Any]


class Outbox:
    """Per-operation buffer of notifications and audit records."""

    def __init__(self, notifier: Optional[Notifier], audit: Optional[AuditSink]) -> None:
        self._notifier = notifier
        self._audit = audit
        self.messages: list[OutboundMessage] = []
        self.audit_records: list[AuditRecord] = []

    def notify(self, event_type: NotificationEvent, recipient: str, payload: dict[str, Any]) -> None:
        self.messages.append(OutboundMessage(event_type, recipient, payload))

    def audit(self, record: AuditRecord) -> None:
        self.audit_records.append(record)

    def flush(self) -> int:
        """Deliver everything buffered. Returns how many notifications were accepted."""
        delivered = 0
        if self._notifier is not None:
            for message in self.messages:
                try:
                    self._notifier.enqueue(message.event_type, message.recipient, message.payload)
                    delivered += 1
                except Exception:
                    logger.exception(
                        "Failed to enqueue %s for %s", message.event_type.value, message.recipient
                    )
        if self._audit is not None:
            for record in self.audit_records:
                try:
                    self._audit.record(record)
                except Exception:
                    logger.exception("Failed to write audit record %s", record.action)
        self.messages.clear()
        self.audit_records.clear()
        return delivered
