"""Tests for daily appointment ceilings."""

import pytest

from slotbook.errors import CapacityError
from slotbook.scheduling.capacity import check_daily_limits
from slotbook.schemas.appointment_schema import AppointmentStatus

from tests.conftest import MONDAY, OTHER_USER, PROVIDER_ID, TUESDAY, USER, make_appointment


class TestDailyLimits:
    def test_under_limits_passes(self, appointments):
        appointments.insert(make_appointment("09:00", "10:00"))
        check_daily_limits(appointments, PROVIDER_ID, USER.user_id, MONDAY, 2, 2)

    def test_provider_at_limit(self, appointments):
        appointments.insert(make_appointment("09:00", "10:00", user_id=OTHER_USER.user_id))
        with pytest.raises(CapacityError) as exc_info:
            check_daily_limits(appointments, PROVIDER_ID, USER.user_id, MONDAY, 1, 5)
        assert exc_info.value.scope == "provider"

    def test_user_at_limit(self, appointments):
        appointments.insert(make_appointment("09:00", "10:00", provider_id="prov-2"))
        with pytest.raises(CapacityError) as exc_info:
            check_daily_limits(appointments, PROVIDER_ID, USER.user_id, MONDAY, 5, 1)
        assert exc_info.value.scope == "user"

    def test_inactive_appointments_not_counted(self, appointments):
        appointments.insert(make_appointment("09:00", "10:00", status=AppointmentStatus.CANCELLED))
        appointments.insert(make_appointment("10:00", "11:00", status=AppointmentStatus.COMPLETED))
        check_daily_limits(appointments, PROVIDER_ID, USER.user_id, MONDAY, 1, 1)

    def test_other_days_not_counted(self, appointments):
        appointments.insert(make_appointment("09:00", "10:00", on=TUESDAY))
        check_daily_limits(appointments, PROVIDER_ID, USER.user_id, MONDAY, 1, 1)


class TestCapacityOnBooking:
    def test_provider_limit_blocks_non_overlapping_booking(self, service, directory, appointments):
        provider = directory.get_provider(PROVIDER_ID)
        provider.max_appointments_per_day = 1
        directory.save_provider(provider)

        service.create_appointment(USER, PROVIDER_ID, MONDAY, "09:00", "10:00")
        with pytest.raises(CapacityError):
            service.create_appointment(OTHER_USER, PROVIDER_ID, MONDAY, "14:00", "15:00")
        assert len(appointments) == 1

    def test_user_limit_blocks_booking(self, service, directory):
        user = directory.get_user(USER.user_id)
        user.max_appointments_per_day = 1
        directory.add_user(user)

        service.create_appointment(USER, PROVIDER_ID, MONDAY, "09:00", "10:00")
        with pytest.raises(CapacityError) as exc_info:
            service.create_appointment(USER, PROVIDER_ID, MONDAY, "14:00", "15:00")
        assert exc_info.value.scope == "user"

    def test_cancelling_frees_capacity(self, service, directory):
        provider = directory.get_provider(PROVIDER_ID)
        provider.max_appointments_per_day = 1
        directory.save_provider(provider)

        first = service.create_appointment(USER, PROVIDER_ID, MONDAY, "09:00", "10:00")
        service.cancel_appointment(USER, first.appointment_id, "Changed plans")
        service.create_appointment(OTHER_USER, PROVIDER_ID, MONDAY, "14:00", "15:00")
