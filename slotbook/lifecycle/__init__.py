from slotbook.lifecycle.reschedule import apply_reschedule, check_eligibility, is_late_reschedule
from slotbook.lifecycle.state_machine import (
    TRANSITIONS,
    allowed,
    apply_transition,
    get_allowed_transitions,
    is_terminal,
    validate_transition,
)

__all__ = [
    "TRANSITIONS",
    "allowed",
    "apply_transition",
    "validate_transition",
    "get_allowed_transitions",
    "is_terminal",
    "check_eligibility",
    "is_late_reschedule",
    "apply_reschedule",
]
