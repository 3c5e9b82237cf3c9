"""Availability rule data models."""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from slotbook.scheduling.timeutils import Weekday, normalize_time, time_to_minutes


class ExceptionCategory(str, Enum):
    HOLIDAY = "HOLIDAY"
    PERSONAL = "PERSONAL"
    BLOCKED = "BLOCKED"
    OTHER = "OTHER"


class TimeWindow(BaseModel):
    """A recurring [start_time, end_time) window within one weekday."""

    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def _valid_time(cls, value: str) -> str:
        return normalize_time(value)

    @model_validator(mode="after")
    def _start_before_end(self) -> "TimeWindow":
        if time_to_minutes(self.start_time) >= time_to_minutes(self.end_time):
            raise ValueError(
                f"Window start {self.start_time} must be before end {self.end_time}"
            )
        return self

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end_time)


class ExceptionDate(BaseModel):
    """A dated exception (holiday, time off) that blocks the whole day."""

    date: date
    reason: str = Field(default="", max_length=200)
    category: ExceptionCategory = ExceptionCategory.BLOCKED


class AvailabilityRule(BaseModel):
    """Recurring availability for one provider on one weekday."""

    provider_id: str
    day_of_week: Weekday
    windows: list[TimeWindow] = Field(default_factory=list)
    is_active: bool = True
    exception_dates: list[ExceptionDate] = Field(default_factory=list)
    priority: int = Field(default=0, ge=0, le=10)


class TimeSlot(BaseModel):
    """A concrete bookable slot."""

    start_time: str
    end_time: str
    duration: int


class DayAvailability(BaseModel):
    """Result of computing bookable slots for one provider on one day."""

    date: date
    day_of_week: Weekday
    slots: list[TimeSlot] = Field(default_factory=list)
    total_count: int = 0
    booked_count: int = 0
    message: str = ""


class SlotCheck(str, Enum):
    """Outcome codes for validating a specific requested slot."""

    AVAILABLE = "available"
    DATE_BLOCKED = "date_blocked"
    DAY_UNAVAILABLE = "day_unavailable"
    OUTSIDE_WINDOW = "outside_window"
    ALREADY_BOOKED = "already_booked"


class SlotValidation(BaseModel):
    available: bool
    reason: str
    code: SlotCheck
    conflict_id: Optional[str] = None
