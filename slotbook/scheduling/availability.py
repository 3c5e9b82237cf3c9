"""
Availability rule store.

One rule per (provider, weekday). Windows within a rule never overlap; every
write validates the complete new window list before replacing the old one,
so a rejected write leaves the rule untouched. Rules are soft-deactivated,
never deleted.

An exception added for a weekday with no rule creates a placeholder rule to
hold it. The first create_rule or window edit for that weekday takes the
placeholder over and keeps its exceptions.
"""

import logging
import threading
from datetime import date
from typing import Iterable, Optional

from pydantic import ValidationError

from slotbook.errors import FormatError, NotFoundError, OverlapError
from slotbook.scheduling.timeutils import (
    Weekday,
    day_of_week,
    intervals_overlap,
    normalize_time,
)
from slotbook.schemas.availability_schema import (
    AvailabilityRule,
    ExceptionCategory,
    ExceptionDate,
    TimeWindow,
)
from slotbook.utils import as_calendar_day

logger = logging.getLogger(__name__)


def _coerce_window(window: "TimeWindow | dict") -> TimeWindow:
    if isinstance(window, TimeWindow):
        return window
    try:
        return TimeWindow.model_validate(window)
    except ValidationError as exc:
        raise FormatError(str(exc)) from None


def check_windows(windows: Iterable[TimeWindow]) -> list[TimeWindow]:
    """Return the windows sorted by start; raise OverlapError if any two overlap."""
    ordered = sorted(windows, key=lambda w: w.start_minutes)
    for earlier, later in zip(ordered, ordered[1:]):
        if intervals_overlap(
            earlier.start_minutes, earlier.end_minutes,
            later.start_minutes, later.end_minutes,
        ):
            raise OverlapError(
                f"Time windows {earlier.start_time}-{earlier.end_time} and "
                f"{later.start_time}-{later.end_time} overlap within the same day"
            )
    return ordered


class AvailabilityRuleStore:
    """Per-provider weekly availability plus dated exceptions."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._rules: dict[tuple[str, Weekday], AvailabilityRule] = {}
        self._placeholders: set[tuple[str, Weekday]] = set()

    def get_rule(self, provider_id: str, weekday: Weekday) -> Optional[AvailabilityRule]:
        with self._lock:
            rule = self._rules.get((provider_id, Weekday(weekday)))
            return rule.model_copy(deep=True) if rule else None

    def get_active_rule(self, provider_id: str, weekday: Weekday) -> Optional[AvailabilityRule]:
        rule = self.get_rule(provider_id, weekday)
        if rule is None or not rule.is_active:
            return None
        return rule

    def list_rules(self, provider_id: str) -> list[AvailabilityRule]:
        order = list(Weekday)
        with self._lock:
            rules = [r.model_copy(deep=True) for (pid, _), r in self._rules.items() if pid == provider_id]
        return sorted(rules, key=lambda r: order.index(r.day_of_week))

    def create_rule(
        self,
        provider_id: str,
        weekday: Weekday,
        windows: Iterable["TimeWindow | dict"] = (),
        exception_dates: Iterable[ExceptionDate] = (),
        priority: int = 0,
    ) -> AvailabilityRule:
        """Create the rule for a weekday.

        Raises:
            OverlapError: If a rule already exists for that weekday or windows overlap.
        """
        weekday = Weekday(weekday)
        ordered = check_windows(_coerce_window(w) for w in windows)
        with self._lock:
            key = (provider_id, weekday)
            held = self._rules.get(key) if key in self._placeholders else None
            if key in self._rules and held is None:
                raise OverlapError(
                    f"Availability rule already exists for {weekday.value}; update it instead"
                )
            rule = AvailabilityRule(
                provider_id=provider_id,
                day_of_week=weekday,
                windows=ordered,
                exception_dates=[*(held.exception_dates if held else []), *exception_dates],
                priority=priority,
            )
            self._rules[key] = rule
            self._placeholders.discard(key)
            logger.info("Availability rule created: %s %s (%d windows)",
                        provider_id, weekday.value, len(ordered))
            return rule.model_copy(deep=True)

    def upsert_window(
        self, provider_id: str, weekday: Weekday, window: "TimeWindow | dict"
    ) -> AvailabilityRule:
        """Add one window, creating the rule if needed. All-or-nothing on overlap."""
        weekday = Weekday(weekday)
        new_window = _coerce_window(window)
        with self._lock:
            current = self._rules.get((provider_id, weekday))
            if current is None:
                current = AvailabilityRule(provider_id=provider_id, day_of_week=weekday)
            ordered = check_windows([*current.windows, new_window])
            updated = current.model_copy(deep=True)
            updated.windows = ordered
            self._rules[(provider_id, weekday)] = updated
            self._placeholders.discard((provider_id, weekday))
            logger.info("Window %s-%s added to %s %s",
                        new_window.start_time, new_window.end_time, provider_id, weekday.value)
            return updated.model_copy(deep=True)

    def replace_windows(
        self, provider_id: str, weekday: Weekday, windows: Iterable["TimeWindow | dict"]
    ) -> AvailabilityRule:
        weekday = Weekday(weekday)
        ordered = check_windows(_coerce_window(w) for w in windows)
        with self._lock:
            current = self._require(provider_id, weekday)
            updated = current.model_copy(deep=True)
            updated.windows = ordered
            self._rules[(provider_id, weekday)] = updated
            self._placeholders.discard((provider_id, weekday))
            return updated.model_copy(deep=True)

    def remove_window(self, provider_id: str, weekday: Weekday, start_time: str) -> AvailabilityRule:
        weekday = Weekday(weekday)
        target = normalize_time(start_time)
        with self._lock:
            current = self._require(provider_id, weekday)
            remaining = [w for w in current.windows if w.start_time != target]
            if len(remaining) == len(current.windows):
                raise NotFoundError("TimeWindow", f"{weekday.value} {target}")
            updated = current.model_copy(deep=True)
            updated.windows = remaining
            self._rules[(provider_id, weekday)] = updated
            self._placeholders.discard((provider_id, weekday))
            return updated.model_copy(deep=True)

    def set_active(self, provider_id: str, weekday: Weekday, is_active: bool) -> AvailabilityRule:
        weekday = Weekday(weekday)
        with self._lock:
            current = self._require(provider_id, weekday)
            current.is_active = is_active
            self._placeholders.discard((provider_id, weekday))
            logger.info("Availability rule %s %s active=%s", provider_id, weekday.value, is_active)
            return current.model_copy(deep=True)

    def add_exception(
        self,
        provider_id: str,
        on: date,
        reason: str = "",
        category: ExceptionCategory = ExceptionCategory.BLOCKED,
        weekday: Optional[Weekday] = None,
    ) -> ExceptionDate:
        """Block a calendar day.

        The exception is attached to the rule for ``weekday`` (default: the
        weekday of ``on``). With no rule for that weekday a placeholder rule
        holds it until ``create_rule`` takes the weekday over.
        """
        day = as_calendar_day(on)
        weekday = Weekday(weekday) if weekday else day_of_week(day)
        exception = ExceptionDate(date=day, reason=reason, category=category)
        with self._lock:
            current = self._rules.get((provider_id, weekday))
            if current is None:
                current = AvailabilityRule(provider_id=provider_id, day_of_week=weekday)
                self._rules[(provider_id, weekday)] = current
                self._placeholders.add((provider_id, weekday))
            current.exception_dates.append(exception)
        logger.info("Exception date %s (%s) added for %s", day, category.value, provider_id)
        return exception

    def remove_exception(self, provider_id: str, on: date) -> int:
        """Remove every exception on ``on`` for the provider; return how many were removed."""
        day = as_calendar_day(on)
        removed = 0
        with self._lock:
            for (pid, _), rule in self._rules.items():
                if pid != provider_id:
                    continue
                kept = [e for e in rule.exception_dates if e.date != day]
                removed += len(rule.exception_dates) - len(kept)
                rule.exception_dates = kept
        return removed

    def is_exception_date(self, provider_id: str, on: date) -> bool:
        """True if the calendar day appears in any of the provider's exception lists."""
        day = as_calendar_day(on)
        with self._lock:
            return any(
                exc.date == day
                for (pid, _), rule in self._rules.items()
                if pid == provider_id
                for exc in rule.exception_dates
            )

    def list_exceptions(self, provider_id: str, start: date, end: date) -> list[ExceptionDate]:
        """Exceptions for the provider falling within [start, end], ordered by date."""
        first, last = as_calendar_day(start), as_calendar_day(end)
        with self._lock:
            found = [
                exc.model_copy()
                for (pid, _), rule in self._rules.items()
                if pid == provider_id
                for exc in rule.exception_dates
                if first <= exc.date <= last
            ]
        return sorted(found, key=lambda e: e.date)

    def _require(self, provider_id: str, weekday: Weekday) -> AvailabilityRule:
        rule = self._rules.get((provider_id, weekday))
        if rule is None:
            raise NotFoundError("AvailabilityRule", f"{provider_id}/{weekday.value}")
        return rule
