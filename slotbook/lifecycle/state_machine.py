"""
Appointment lifecycle state machine.

A single transition table holds every valid (from, to) pair together with
the roles allowed to request it. A transition is accepted only if the pair
exists AND the actor's role is listed. Pairs with no roles are internal
steps of the reschedule operation and cannot be requested directly.

Usage:
    validate_transition(AppointmentStatus.REQUESTED, AppointmentStatus.APPROVED,
                        Role.SERVICE_PROVIDER)
    apply_transition(appointment, AppointmentStatus.APPROVED, actor_id, role, at=now)
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from slotbook.errors import TransitionError
from slotbook.schemas.appointment_schema import (
    Appointment,
    AppointmentStatus,
    Role,
    StatusHistoryEntry,
)

logger = logging.getLogger(__name__)

S = AppointmentStatus
_USER = Role.END_USER
_PROVIDER = Role.SERVICE_PROVIDER
_ADMIN = Role.SYSTEM_ADMIN


@dataclass(frozen=True)
class Transition:
    """A valid status change and the roles permitted to request it."""
    from_status: AppointmentStatus
    to_status: AppointmentStatus
    roles: frozenset[Role] = frozenset()


TRANSITIONS: list[Transition] = [
    # --- Request review ---
    Transition(S.REQUESTED, S.APPROVED, frozenset({_PROVIDER, _ADMIN})),
    Transition(S.REQUESTED, S.REJECTED, frozenset({_PROVIDER, _ADMIN})),
    Transition(S.REQUESTED, S.CANCELLED, frozenset({_USER, _ADMIN})),

    # --- Approved ---
    Transition(S.APPROVED, S.IN_PROGRESS, frozenset({_PROVIDER, _ADMIN})),
    Transition(S.APPROVED, S.CANCELLED, frozenset({_USER, _PROVIDER, _ADMIN})),
    Transition(S.APPROVED, S.COMPLETED, frozenset({_ADMIN})),
    Transition(S.APPROVED, S.RESCHEDULED),

    # --- In progress ---
    Transition(S.IN_PROGRESS, S.COMPLETED, frozenset({_PROVIDER, _ADMIN})),
    Transition(S.IN_PROGRESS, S.CANCELLED, frozenset({_ADMIN})),

    # --- Reschedule re-entry ---
    Transition(S.RESCHEDULED, S.APPROVED),
    Transition(S.RESCHEDULED, S.REQUESTED),
]

_TABLE: dict[tuple[AppointmentStatus, AppointmentStatus], Transition] = {
    (t.from_status, t.to_status): t for t in TRANSITIONS
}


def is_valid_transition(from_status: AppointmentStatus, to_status: AppointmentStatus) -> bool:
    """Global validity, ignoring role."""
    return (S(from_status), S(to_status)) in _TABLE


def allowed(role: Role, from_status: AppointmentStatus, to_status: AppointmentStatus) -> bool:
    transition = _TABLE.get((S(from_status), S(to_status)))
    return transition is not None and Role(role) in transition.roles


def validate_transition(
    from_status: AppointmentStatus, to_status: AppointmentStatus, role: Role
) -> None:
    """
    Raise TransitionError unless ``role`` may move an appointment from one status to another.

    The error names the attempted source and target and, when the pair is
    valid but the role is not permitted, the roles that are.
    """
    from_status, to_status, role = S(from_status), S(to_status), Role(role)
    transition = _TABLE.get((from_status, to_status))
    if transition is None:
        raise TransitionError(
            f"Invalid transition from {from_status.value} to {to_status.value}",
            from_status=from_status.value,
            to_status=to_status.value,
        )
    if role not in transition.roles:
        required = ", ".join(sorted(r.value for r in transition.roles)) or None
        raise TransitionError(
            f"User with role {role.value} cannot transition from "
            f"{from_status.value} to {to_status.value}"
            + (f" (requires {required})" if required else ""),
            from_status=from_status.value,
            to_status=to_status.value,
            required_role=required,
        )


def get_allowed_transitions(status: AppointmentStatus, role: Role) -> list[AppointmentStatus]:
    """Targets ``role`` may request from ``status``, in table order."""
    return [
        t.to_status for t in TRANSITIONS
        if t.from_status == S(status) and Role(role) in t.roles
    ]


def is_terminal(status: AppointmentStatus) -> bool:
    """Check if no further transitions exist from this status."""
    return not any(t.from_status == S(status) for t in TRANSITIONS)


def record_status(
    appointment: Appointment,
    to_status: AppointmentStatus,
    changed_by: str,
    at: datetime,
    reason: str = "",
) -> Appointment:
    """
    Move the appointment to ``to_status`` and append one history entry.

    Checks global validity only; role checks belong to apply_transition.
    CANCELLED and REJECTED reasons are also kept in their dedicated fields.
    """
    from_status = appointment.status
    to_status = S(to_status)
    if not is_valid_transition(from_status, to_status):
        raise TransitionError(
            f"Cannot transition from {from_status.value} to {to_status.value}",
            from_status=from_status.value,
            to_status=to_status.value,
        )

    appointment.status_history.append(StatusHistoryEntry(
        status=to_status, changed_by=changed_by, changed_at=at, reason=reason or "",
    ))
    appointment.status = to_status
    appointment.updated_at = at

    if to_status == S.CANCELLED and reason:
        appointment.cancellation_reason = reason
    elif to_status == S.REJECTED and reason:
        appointment.rejection_reason = reason

    logger.debug(
        "Appointment %s: %s -> %s (by %s)",
        appointment.appointment_id, from_status.value, to_status.value, changed_by,
    )
    return appointment


def apply_transition(
    appointment: Appointment,
    to_status: AppointmentStatus,
    actor_id: str,
    role: Role,
    at: datetime,
    reason: str = "",
) -> Appointment:
    """Validate against the role table, then record the change."""
    validate_transition(appointment.status, to_status, role)
    return record_status(appointment, to_status, actor_id, at, reason)


def auto_transition_status(
    appointment: Appointment, now: datetime
) -> Optional[tuple[AppointmentStatus, str]]:
    """Status an appointment should move to purely because time has passed, if any."""
    if appointment.status == S.APPROVED and now >= appointment.starts_at:
        return S.IN_PROGRESS, "Appointment start time reached"
    if appointment.status == S.IN_PROGRESS and now >= appointment.ends_at:
        return S.COMPLETED, "Appointment end time reached"
    return None


def can_cancel(appointment: Appointment, now: datetime, notice_hours: int = 24) -> tuple[bool, str]:
    """Cancellation policy: no cancellations inside the notice period."""
    hours_until = (appointment.starts_at - now).total_seconds() / 3600
    if hours_until < notice_hours:
        return False, f"Cannot cancel within {notice_hours} hours of appointment"
    return True, "Cancellation allowed"
