"""
Offline console demo: walks a provider and a customer through the booking core.

Uses the real rule store, conflict checker, state machine and notification
queue with in-memory persistence. No network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario race
    python console_demo.py --scenario holiday
"""

import argparse
import threading
from datetime import date, timedelta
from typing import Optional

from slotbook.config import settings
from slotbook.errors import BookingError
from slotbook.persistence import AppointmentStore, Directory
from slotbook.scheduling.availability import AvailabilityRuleStore
from slotbook.scheduling.timeutils import day_of_week
from slotbook.schemas.appointment_schema import AppointmentStatus, Role
from slotbook.schemas.availability_schema import ExceptionCategory, TimeWindow
from slotbook.schemas.directory_schema import EndUser, Provider
from slotbook.services import (
    Actor,
    BookingService,
    InMemoryAuditLog,
    NotificationQueue,
    ProviderService,
)

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

PROVIDER = Actor("u-provider", Role.SERVICE_PROVIDER)
CUSTOMER = Actor("u-customer", Role.END_USER)
ADMIN = Actor("u-admin", Role.SYSTEM_ADMIN)


def next_weekday(start: date, weekday: int) -> date:
    return start + timedelta(days=(weekday - start.weekday()) % 7 or 7)


class ConsoleSession:
    """Scripted booking walkthroughs printed to the terminal."""

    SCENARIOS = ("booking", "race", "holiday")

    def __init__(self, today: Optional[date] = None) -> None:
        self.today = today or date.today()
        self.monday = next_weekday(self.today, 0)
        self.rules = AvailabilityRuleStore()
        self.appointments = AppointmentStore()
        self.directory = Directory()
        self.audit = InMemoryAuditLog()
        self.queue = NotificationQueue()
        self.service = BookingService(
            self.rules, self.appointments, self.directory,
            notifier=self.queue, audit=self.audit,
        )
        self.providers = ProviderService(
            self.directory, self.appointments, notifier=self.queue, audit=self.audit,
        )
        self._seed()

    def _seed(self) -> None:
        self.directory.add_provider(Provider(
            provider_id="prov-1",
            user_id=PROVIDER.user_id,
            business_name="Harbour Physio",
            email="desk@harbourphysio.example",
            base_price=85.0,
            location="12 Quay St",
        ))
        self.directory.add_user(EndUser(
            user_id=CUSTOMER.user_id, name="Sam Carter", email="sam@example.com",
        ))
        self.directory.add_user(EndUser(
            user_id="u-other", name="Alex Moss", email="alex@example.com",
        ))
        self.rules.create_rule("prov-1", day_of_week(self.monday), [
            TimeWindow(start_time="09:00", end_time="12:00"),
            TimeWindow(start_time="13:00", end_time="17:00"),
        ])

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def fail(self, exc: BookingError) -> None:
        print(f"{RED}  !! {type(exc).__name__}: {exc}{RESET}")

    def banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  SLOTBOOK - {title}{RESET}")
        print(f"{BOLD}  Service: {settings.service_name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    def show_slots(self, on: date) -> None:
        day = self.service.get_available_slots("prov-1", on)
        self.say(f"{on} ({day.day_of_week.value}): {day.message}")
        self.system_log(", ".join(f"{s.start_time}-{s.end_time}" for s in day.slots) or "none")

    def run_scenario(self, scenario: str) -> None:
        if scenario not in self.SCENARIOS:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return
        self.banner(f"Scenario: {scenario}")
        self.providers.approve_provider(ADMIN, "prov-1")
        getattr(self, f"_scenario_{scenario}")()
        self.queue.process_due()
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{DIM}  Notifications delivered: {self.queue.delivered}{RESET}")
        print(f"{DIM}  Audit records: {len(self.audit.entries())}{RESET}")
        print(f"{DIM}  Provider stats: {self.providers.provider_stats('prov-1')}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    def _scenario_booking(self) -> None:
        self.show_slots(self.monday)

        appointment = self.service.create_appointment(
            CUSTOMER, "prov-1", self.monday, "10:00", "11:00", notes="Shoulder review",
        )
        self.say(f"Booked {appointment.appointment_id} ({appointment.status.value})")
        self.show_slots(self.monday)

        try:
            self.service.update_status(CUSTOMER, appointment.appointment_id,
                                       AppointmentStatus.APPROVED)
        except BookingError as exc:
            self.fail(exc)

        appointment = self.service.update_status(
            PROVIDER, appointment.appointment_id, AppointmentStatus.APPROVED,
        )
        self.say(f"Provider approved -> {appointment.status.value}")

        result = self.service.reschedule_appointment(
            CUSTOMER, appointment.appointment_id, self.monday, "14:00", "15:00",
            reason="Clashes with work",
        )
        self.say(
            f"Rescheduled to {result.appointment.start_time}-{result.appointment.end_time} "
            f"({result.appointment.status.value}, late={result.is_late_reschedule}, "
            f"{result.remaining_reschedules} left)"
        )

        for entry in result.appointment.status_history:
            self.system_log(f"{entry.status.value:<12} by {entry.changed_by}: {entry.reason}")

    def _scenario_race(self) -> None:
        customers = []
        for i in range(5):
            user = EndUser(user_id=f"u-race-{i}", name=f"Racer {i}", email=f"r{i}@example.com")
            self.directory.add_user(user)
            customers.append(Actor(user.user_id, Role.END_USER))

        outcomes: list[str] = []
        barrier = threading.Barrier(len(customers))

        def book(actor: Actor) -> None:
            barrier.wait()
            try:
                self.service.create_appointment(actor, "prov-1", self.monday, "09:00", "10:00")
                outcomes.append(f"{actor.user_id}: booked")
            except BookingError as exc:
                outcomes.append(f"{actor.user_id}: {type(exc).__name__}")

        threads = [threading.Thread(target=book, args=(a,)) for a in customers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        for line in sorted(outcomes):
            self.system_log(line)
        self.show_slots(self.monday)

    def _scenario_holiday(self) -> None:
        self.rules.add_exception("prov-1", self.monday, "Public holiday",
                                 ExceptionCategory.HOLIDAY)
        self.show_slots(self.monday)
        try:
            self.service.create_appointment(CUSTOMER, "prov-1", self.monday, "09:00", "10:00")
        except BookingError as exc:
            self.fail(exc)
        following = self.monday + timedelta(days=7)
        self.show_slots(following)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Slotbook console demo")
    parser.add_argument("--scenario", default="booking", choices=ConsoleSession.SCENARIOS)
    args = parser.parse_args(argv)
    ConsoleSession().run_scenario(args.scenario)


if __name__ == "__main__":
    main()
