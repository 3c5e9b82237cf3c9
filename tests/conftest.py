"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta
from typing import Any, Optional

import pytest

from slotbook.persistence import AppointmentStore, Directory
from slotbook.scheduling.availability import AvailabilityRuleStore
from slotbook.scheduling.conflicts import ConflictChecker
from slotbook.scheduling.timeutils import Weekday
from slotbook.schemas.appointment_schema import (
    Appointment,
    AppointmentStatus,
    Role,
    StatusHistoryEntry,
)
from slotbook.schemas.availability_schema import TimeWindow
from slotbook.schemas.directory_schema import EndUser, Provider
from slotbook.services import Actor, BookingService, InMemoryAuditLog, ProviderService

# 2030-01-01 is a Tuesday; 2030-01-07 is the following Monday.
FIXED_NOW = datetime(2030, 1, 1, 8, 0)
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)

PROVIDER_ID = "prov-1"
USER = Actor("u-1", Role.END_USER)
OTHER_USER = Actor("u-2", Role.END_USER)
PROVIDER = Actor("u-prov", Role.SERVICE_PROVIDER)
OTHER_PROVIDER = Actor("u-prov-2", Role.SERVICE_PROVIDER)
ADMIN = Actor("u-admin", Role.SYSTEM_ADMIN)


class FakeClock:
    """Injectable clock; tests move time explicitly."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


class RecordingNotifier:
    """Notifier that keeps every enqueue call; can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.fail = False

    def enqueue(self, event_type, recipient, payload):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append((event_type.value, recipient, payload))

    def events(self) -> list[str]:
        return [event for event, _, _ in self.sent]

    def recipients(self, event: str) -> list[str]:
        return [r for e, r, _ in self.sent if e == event]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rules():
    store = AvailabilityRuleStore()
    store.create_rule(PROVIDER_ID, Weekday.MONDAY, [
        TimeWindow(start_time="09:00", end_time="12:00"),
        TimeWindow(start_time="13:00", end_time="17:00"),
    ])
    return store


@pytest.fixture
def appointments():
    return AppointmentStore()


@pytest.fixture
def directory():
    d = Directory()
    d.add_provider(Provider(
        provider_id=PROVIDER_ID,
        user_id=PROVIDER.user_id,
        business_name="Harbour Physio",
        email="desk@physio.test",
        base_price=80.0,
        slot_duration=60,
        max_appointments_per_day=10,
        location="12 Quay St",
    ))
    d.add_provider(Provider(
        provider_id="prov-2",
        user_id=OTHER_PROVIDER.user_id,
        business_name="Northside Dental",
        email="desk@dental.test",
        slot_duration=30,
        max_appointments_per_day=10,
    ))
    d.add_user(EndUser(user_id=USER.user_id, name="Sam Carter", email="sam@user.test",
                       max_appointments_per_day=5))
    d.add_user(EndUser(user_id=OTHER_USER.user_id, name="Alex Moss", email="alex@user.test",
                       max_appointments_per_day=5))
    return d


@pytest.fixture
def checker(rules, appointments):
    return ConflictChecker(rules, appointments)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def audit():
    return InMemoryAuditLog()


@pytest.fixture
def service(rules, appointments, directory, notifier, audit, clock):
    return BookingService(
        rules, appointments, directory, notifier=notifier, audit=audit, clock=clock,
    )


@pytest.fixture
def provider_service(directory, appointments, notifier, audit, clock):
    return ProviderService(directory, appointments, notifier=notifier, audit=audit, clock=clock)


@pytest.fixture
def approved(service):
    """An APPROVED Monday 10:00-11:00 appointment for USER."""
    created = service.create_appointment(USER, PROVIDER_ID, MONDAY, "10:00", "11:00")
    return service.update_status(PROVIDER, created.appointment_id, AppointmentStatus.APPROVED)


_counter = {"n": 0}


def make_appointment(
    start_time: str = "10:00",
    end_time: str = "11:00",
    on: date = MONDAY,
    status: AppointmentStatus = AppointmentStatus.APPROVED,
    provider_id: str = PROVIDER_ID,
    user_id: str = USER.user_id,
    appointment_id: Optional[str] = None,
    **overrides: Any,
) -> Appointment:
    """Helper to create an Appointment record directly, bypassing the service."""
    _counter["n"] += 1
    return Appointment(
        appointment_id=appointment_id or f"APT-TEST-{_counter['n']}",
        user_id=user_id,
        provider_id=provider_id,
        date=on,
        start_time=start_time,
        end_time=end_time,
        status=status,
        status_history=[StatusHistoryEntry(
            status=status, changed_by=user_id, changed_at=FIXED_NOW,
        )],
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
        **overrides,
    )
