"""Typed booking errors.

All of these are recoverable by the caller and scoped to a single request;
the request layer maps them to user-facing messages.
"""

from typing import Optional


class BookingError(Exception):
    """Base class for every error raised by the booking core."""


class FormatError(BookingError, ValueError):
    """Malformed time or date input."""


class OverlapError(BookingError):
    """Availability windows or appointments overlap where they must not."""


class SlotUnavailableError(BookingError):
    """Requested slot is on a blocked date or outside the provider's hours."""

    def __init__(self, reason: str, code: str) -> None:
        super().__init__(reason)
        self.reason = reason
        self.code = code


class TransitionError(BookingError):
    """Invalid or role-forbidden status change."""

    def __init__(
        self,
        message: str,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        required_role: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.from_status = from_status
        self.to_status = to_status
        self.required_role = required_role


class EligibilityError(TransitionError):
    """Appointment is not eligible for a reschedule or a reminder."""


class CapacityError(BookingError):
    """Daily appointment ceiling reached."""

    def __init__(self, message: str, scope: str) -> None:
        super().__init__(message)
        self.scope = scope


class NotFoundError(BookingError, LookupError):
    """Referenced provider, user, appointment or rule does not exist."""

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConcurrencyConflict(BookingError):
    """Lost a race on a versioned write; the whole operation may be retried."""
