"""Tests for the outbox and the retrying notification queue."""

from datetime import datetime, timedelta

import pytest

from slotbook.config import NotificationConfig
from slotbook.services.events import AuditRecord, InMemoryAuditLog, NotificationEvent, Outbox
from slotbook.services.notifications import JobState, NotificationQueue

from tests.conftest import FIXED_NOW, FakeClock, RecordingNotifier

CONFIG = NotificationConfig(max_attempts=3, backoff_seconds=2.0, reminder_max_attempts=2)


class FlakyTransport:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.delivered = []

    def __call__(self, job):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("smtp timeout")
        self.delivered.append(job)


@pytest.fixture
def clock():
    return FakeClock(FIXED_NOW)


class TestNotificationQueue:
    def test_delivers_on_first_attempt(self, clock):
        transport = FlakyTransport(failures=0)
        queue = NotificationQueue(transport, CONFIG, clock)
        job = queue.enqueue(NotificationEvent.BOOKING_CONFIRMATION, "sam@user.test", {"a": 1})
        assert queue.process_due() == 1
        assert job.state == JobState.COMPLETED
        assert transport.delivered == [job]

    def test_failed_job_backs_off_exponentially(self, clock):
        queue = NotificationQueue(FlakyTransport(failures=2), CONFIG, clock)
        job = queue.enqueue(NotificationEvent.APPOINTMENT_APPROVED, "sam@user.test", {})

        queue.process_due()
        assert job.state == JobState.PENDING
        assert job.next_attempt_at == FIXED_NOW + timedelta(seconds=2)

        clock.advance(seconds=1)
        assert queue.process_due() == 0

        clock.advance(seconds=1)
        queue.process_due()
        assert job.next_attempt_at == clock.now + timedelta(seconds=4)

        clock.advance(seconds=4)
        queue.process_due()
        assert job.state == JobState.COMPLETED
        assert job.attempts == 3

    def test_dead_letter_after_budget(self, clock):
        queue = NotificationQueue(FlakyTransport(failures=10), CONFIG, clock)
        job = queue.enqueue(NotificationEvent.APPOINTMENT_CANCELLED, "desk@physio.test", {})
        for _ in range(CONFIG.max_attempts):
            queue.process_due()
            clock.advance(minutes=5)
        assert job.state == JobState.DEAD
        assert queue.dead_letters == [job]
        assert len(job.errors) == 3

    def test_reminders_have_own_budget(self, clock):
        queue = NotificationQueue(FlakyTransport(failures=10), CONFIG, clock)
        job = queue.enqueue(NotificationEvent.APPOINTMENT_REMINDER, "sam@user.test", {})
        assert job.max_attempts == 2
        queue.process_due()
        clock.advance(minutes=5)
        queue.process_due()
        assert job.state == JobState.DEAD

    def test_missing_recipient_rejected(self, clock):
        queue = NotificationQueue(FlakyTransport(0), CONFIG, clock)
        with pytest.raises(ValueError):
            queue.enqueue(NotificationEvent.BOOKING_CONFIRMATION, "", {})

    def test_delivered_jobs_are_dropped(self, clock):
        queue = NotificationQueue(FlakyTransport(0), CONFIG, clock)
        queue.enqueue(NotificationEvent.BOOKING_CONFIRMATION, "a@user.test", {})
        queue.enqueue(NotificationEvent.BOOKING_CONFIRMATION, "b@user.test", {})
        queue.process_due()
        assert queue.delivered == 2
        assert queue.jobs() == []

    def test_queue_does_not_grow_with_traffic(self, clock):
        queue = NotificationQueue(FlakyTransport(0), CONFIG, clock)
        for n in range(100):
            queue.enqueue(NotificationEvent.BOOKING_CONFIRMATION, f"u{n}@user.test", {})
            queue.process_due()
        assert queue.delivered == 100
        assert len(queue.jobs()) == 0

    def test_jobs_filtered_by_state(self, clock):
        queue = NotificationQueue(FlakyTransport(failures=10), CONFIG, clock)
        dead = queue.enqueue(NotificationEvent.APPOINTMENT_REMINDER, "a@user.test", {})
        retrying = queue.enqueue(NotificationEvent.BOOKING_CONFIRMATION, "b@user.test", {})
        queue.process_due()
        clock.advance(seconds=2)
        queue.process_due()
        assert queue.jobs(JobState.DEAD) == [dead]
        assert queue.jobs(JobState.PENDING) == [retrying]
        assert queue.jobs(JobState.COMPLETED) == []


class TestOutbox:
    def test_nothing_sent_until_flush(self):
        notifier = RecordingNotifier()
        outbox = Outbox(notifier, None)
        outbox.notify(NotificationEvent.BOOKING_CONFIRMATION, "sam@user.test", {})
        assert notifier.sent == []
        assert outbox.flush() == 1
        assert notifier.events() == ["BOOKING_CONFIRMATION"]

    def test_failures_swallowed(self):
        notifier = RecordingNotifier()
        notifier.fail = True
        outbox = Outbox(notifier, InMemoryAuditLog())
        outbox.notify(NotificationEvent.BOOKING_CONFIRMATION, "sam@user.test", {})
        assert outbox.flush() == 0

    def test_audit_records_written(self):
        log = InMemoryAuditLog()
        outbox = Outbox(None, log)
        outbox.audit(AuditRecord("X", "u-1", "Appointment", "APT-1", datetime(2030, 1, 1)))
        outbox.flush()
        assert [e.entity_id for e in log.entries()] == ["APT-1"]

    def test_flush_clears_buffer(self):
        notifier = RecordingNotifier()
        outbox = Outbox(notifier, None)
        outbox.notify(NotificationEvent.BOOKING_CONFIRMATION, "sam@user.test", {})
        outbox.flush()
        outbox.flush()
        assert len(notifier.sent) == 1
