"""Appointment data models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from slotbook.scheduling.timeutils import normalize_time, time_to_minutes
from slotbook.utils import combine


class AppointmentStatus(str, Enum):
    """All possible states in an appointment lifecycle."""
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    RESCHEDULED = "RESCHEDULED"


ACTIVE_STATUSES = frozenset({
    AppointmentStatus.REQUESTED,
    AppointmentStatus.APPROVED,
    AppointmentStatus.IN_PROGRESS,
})


class Role(str, Enum):
    END_USER = "END_USER"
    SERVICE_PROVIDER = "SERVICE_PROVIDER"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"


class ServiceDetails(BaseModel):
    """Snapshot of the provider's offering captured at booking time."""
    service_name: str = ""
    price: float = 0.0
    duration: int = 0


class StatusHistoryEntry(BaseModel):
    status: AppointmentStatus
    changed_by: str
    changed_at: datetime
    reason: str = ""


class RescheduleHistoryEntry(BaseModel):
    previous_date: date
    previous_start_time: str
    previous_end_time: str
    new_date: date
    new_start_time: str
    new_end_time: str
    rescheduled_by: str
    rescheduled_at: datetime
    reason: str = ""
    is_late_reschedule: bool = False


class Appointment(BaseModel):
    """
    Central booking record.

    ``version`` is bumped by the store on every committed write and is the
    compare-and-swap token for concurrent updates.
    """

    appointment_id: str
    user_id: str
    provider_id: str
    date: date
    start_time: str
    end_time: str
    status: AppointmentStatus = AppointmentStatus.REQUESTED
    notes: str = Field(default="", max_length=500)
    cancellation_reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    service_details: ServiceDetails = Field(default_factory=ServiceDetails)
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    reschedule_history: list[RescheduleHistoryEntry] = Field(default_factory=list)
    reschedule_count: int = Field(default=0, ge=0)
    reschedule_limit: int = Field(default=2, ge=0)
    reminder_sent: bool = False
    reminder_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    model_config = {"validate_assignment": True}

    @field_validator("start_time", "end_time")
    @classmethod
    def _valid_time(cls, value: str) -> str:
        return normalize_time(value)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def starts_at(self) -> datetime:
        return combine(self.date, time_to_minutes(self.start_time))

    @property
    def ends_at(self) -> datetime:
        return combine(self.date, time_to_minutes(self.end_time))
