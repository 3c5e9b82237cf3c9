"""Provider and end-user records consumed by the booking core."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from slotbook.config import MAX_SLOT_DURATION, MIN_SLOT_DURATION, settings


class ProviderApproval(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Provider(BaseModel):
    """Service provider profile with slot and capacity settings."""
    provider_id: str
    user_id: str
    business_name: str
    email: str
    base_price: float = Field(default=0.0, ge=0)
    slot_duration: int = Field(
        default_factory=lambda: settings.booking.default_slot_duration,
        ge=MIN_SLOT_DURATION, le=MAX_SLOT_DURATION,
    )
    max_appointments_per_day: int = Field(
        default_factory=lambda: settings.booking.max_provider_per_day, ge=1, le=50
    )
    require_approval_for_late_reschedule: bool = False
    location: Optional[str] = None
    approval: ProviderApproval = ProviderApproval.PENDING
    rejection_reason: Optional[str] = None


class EndUser(BaseModel):
    """End user who books appointments."""
    user_id: str
    name: str
    email: str
    max_appointments_per_day: int = Field(
        default_factory=lambda: settings.booking.max_user_per_day, ge=1
    )


class ProviderStats(BaseModel):
    """Provider counters derived from the appointment set."""
    total_appointments: int = 0
    completed_appointments: int = 0
    cancelled_appointments: int = 0
    pending_appointments: int = 0
    upcoming_appointments: int = 0
    utilization_rate: float = 0.0
