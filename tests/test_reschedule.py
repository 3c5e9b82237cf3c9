"""Tests for rescheduling: eligibility, late classification and the compound move."""

from datetime import datetime, timedelta

import pytest

from slotbook.errors import EligibilityError, OverlapError, SlotUnavailableError, TransitionError
from slotbook.lifecycle.reschedule import apply_reschedule, check_eligibility, is_late_reschedule
from slotbook.schemas.appointment_schema import AppointmentStatus as S

from tests.conftest import (
    ADMIN,
    FIXED_NOW,
    MONDAY,
    OTHER_USER,
    PROVIDER,
    PROVIDER_ID,
    TUESDAY,
    USER,
    make_appointment,
)


class TestEligibility:
    def test_approved_future_appointment_is_eligible(self):
        appointment = make_appointment(reschedule_count=1, reschedule_limit=2)
        assert check_eligibility(appointment, FIXED_NOW) == 1

    def test_limit_reached(self):
        appointment = make_appointment(reschedule_count=2, reschedule_limit=2)
        with pytest.raises(EligibilityError, match="Maximum reschedule limit"):
            check_eligibility(appointment, FIXED_NOW)

    def test_only_approved(self):
        appointment = make_appointment(status=S.REQUESTED)
        with pytest.raises(EligibilityError, match="Only approved"):
            check_eligibility(appointment, FIXED_NOW)

    def test_started_appointment_not_eligible(self):
        appointment = make_appointment()
        with pytest.raises(EligibilityError, match="past"):
            check_eligibility(appointment, appointment.starts_at)

    def test_eligibility_error_is_transition_error(self):
        assert issubclass(EligibilityError, TransitionError)


class TestLateClassification:
    def test_two_hours_ahead_is_late(self):
        appointment = make_appointment()
        assert is_late_reschedule(appointment, appointment.starts_at - timedelta(hours=2))

    def test_two_days_ahead_is_not_late(self):
        appointment = make_appointment()
        assert not is_late_reschedule(appointment, appointment.starts_at - timedelta(days=2))

    def test_exactly_threshold_is_not_late(self):
        appointment = make_appointment()
        assert not is_late_reschedule(appointment, appointment.starts_at - timedelta(hours=24))


class TestApplyReschedule:
    def test_moves_and_records_history(self):
        appointment = make_appointment(reminder_sent=True, reminder_sent_at=FIXED_NOW)
        apply_reschedule(appointment, TUESDAY, "14:00", "15:00", "u-1", FIXED_NOW, "Clash")
        assert (appointment.date, appointment.start_time, appointment.end_time) == (TUESDAY, "14:00", "15:00")
        assert appointment.status == S.APPROVED
        assert appointment.reschedule_count == 1
        assert not appointment.reminder_sent
        assert appointment.reminder_sent_at is None

        entry = appointment.reschedule_history[0]
        assert (entry.previous_date, entry.previous_start_time) == (MONDAY, "10:00")
        assert (entry.new_date, entry.new_start_time) == (TUESDAY, "14:00")
        assert entry.reason == "Clash"

        statuses = [h.status for h in appointment.status_history[-2:]]
        assert statuses == [S.RESCHEDULED, S.APPROVED]

    def test_late_with_reapproval_returns_to_requested(self):
        appointment = make_appointment()
        apply_reschedule(appointment, TUESDAY, "14:00", "15:00", "u-1", FIXED_NOW,
                         is_late=True, require_reapproval=True)
        assert appointment.status == S.REQUESTED
        assert appointment.reschedule_history[0].is_late_reschedule

    def test_late_without_reapproval_stays_approved(self):
        appointment = make_appointment()
        apply_reschedule(appointment, TUESDAY, "14:00", "15:00", "u-1", FIXED_NOW, is_late=True)
        assert appointment.status == S.APPROVED


class TestRescheduleService:
    def test_successful_reschedule(self, service, approved, notifier):
        result = service.reschedule_appointment(USER, approved.appointment_id, MONDAY, "14:00", "15:00")
        assert result.appointment.start_time == "14:00"
        assert result.appointment.status == S.APPROVED
        assert not result.is_late_reschedule
        assert result.remaining_reschedules == 1
        assert notifier.recipients("APPOINTMENT_RESCHEDULED") == ["sam@user.test", "desk@physio.test"]

    def test_old_slot_freed_new_slot_taken(self, service, approved):
        service.reschedule_appointment(USER, approved.appointment_id, MONDAY, "14:00", "15:00")
        starts = [s.start_time for s in service.get_available_slots(PROVIDER_ID, MONDAY).slots]
        assert "10:00" in starts
        assert "14:00" not in starts

    def test_limit_checked_before_slot_validation(self, service, approved, rules, appointments):
        stored = appointments.get(approved.appointment_id)
        stored.reschedule_count = 2
        appointments.compare_and_swap(stored)
        rules.add_exception(PROVIDER_ID, TUESDAY, "Closed")
        # Tuesday has no rule and is blocked; eligibility must fail first.
        with pytest.raises(EligibilityError, match="Maximum reschedule limit"):
            service.reschedule_appointment(USER, approved.appointment_id, TUESDAY, "09:00", "10:00")

    def test_late_reschedule_flagged(self, service, approved, clock):
        clock.set(datetime(2030, 1, 7, 8, 0))
        result = service.reschedule_appointment(USER, approved.appointment_id, MONDAY, "14:00", "15:00")
        assert result.is_late_reschedule
        assert result.appointment.reschedule_history[-1].is_late_reschedule

    def test_late_reschedule_requires_reapproval_when_configured(self, service, approved, clock, directory):
        provider = directory.get_provider(PROVIDER_ID)
        provider.require_approval_for_late_reschedule = True
        directory.save_provider(provider)
        clock.set(datetime(2030, 1, 7, 8, 0))
        result = service.reschedule_appointment(USER, approved.appointment_id, MONDAY, "14:00", "15:00")
        assert result.appointment.status == S.REQUESTED

    def test_failed_validation_writes_no_history(self, service, approved, appointments):
        before = appointments.get(approved.appointment_id)
        with pytest.raises(SlotUnavailableError):
            service.reschedule_appointment(USER, approved.appointment_id, MONDAY, "11:30", "12:30")
        after = appointments.get(approved.appointment_id)
        assert after == before

    def test_conflict_with_other_booking(self, service, approved):
        service.create_appointment(OTHER_USER, PROVIDER_ID, MONDAY, "14:00", "15:00")
        with pytest.raises(OverlapError):
            service.reschedule_appointment(USER, approved.appointment_id, MONDAY, "14:30", "15:30")

    def test_may_overlap_its_own_current_slot(self, service, approved):
        result = service.reschedule_appointment(USER, approved.appointment_id, MONDAY, "10:30", "11:30")
        assert result.appointment.start_time == "10:30"

    def test_provider_cannot_reschedule(self, service, approved):
        with pytest.raises(TransitionError):
            service.reschedule_appointment(PROVIDER, approved.appointment_id, MONDAY, "14:00", "15:00")

    def test_admin_can_reschedule(self, service, approved):
        result = service.reschedule_appointment(ADMIN, approved.appointment_id, MONDAY, "14:00", "15:00")
        assert result.appointment.reschedule_history[-1].rescheduled_by == ADMIN.user_id

    def test_requested_appointment_not_reschedulable(self, service):
        created = service.create_appointment(USER, PROVIDER_ID, MONDAY, "10:00", "11:00")
        with pytest.raises(EligibilityError):
            service.reschedule_appointment(USER, created.appointment_id, MONDAY, "14:00", "15:00")

    def test_second_reschedule_then_limit(self, service, approved):
        service.reschedule_appointment(USER, approved.appointment_id, MONDAY, "13:00", "14:00")
        result = service.reschedule_appointment(USER, approved.appointment_id, MONDAY, "14:00", "15:00")
        assert result.remaining_reschedules == 0
        with pytest.raises(EligibilityError):
            service.reschedule_appointment(USER, approved.appointment_id, MONDAY, "15:00", "16:00")
