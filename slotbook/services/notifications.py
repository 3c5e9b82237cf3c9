"""
In-process notification queue.

Jobs are delivered through a transport callable. A failed delivery is
retried with exponential backoff until the job's attempt budget is spent,
after which the job moves to the dead-letter list. Reminder jobs have their
own, smaller budget. Delivered jobs are dropped from the queue after each
pass; only their count is kept.
"""

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from slotbook.config import NotificationConfig, settings
from slotbook.services.events import NotificationEvent

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    DEAD = "dead"


@dataclass
class NotificationJob:
    job_id: int
    event_type: NotificationEvent
    recipient: str
    payload: dict[str, Any]
    max_attempts: int
    next_attempt_at: datetime
    attempts: int = 0
    state: JobState = JobState.PENDING
    errors: list[str] = field(default_factory=list)


Transport = Callable[[NotificationJob], None]


def log_transport(job: NotificationJob) -> None:
    """Default transport: write the message to the log instead of sending it."""
    logger.info("Delivering %s to %s", job.event_type.value, job.recipient)


class NotificationQueue:
    """Implements the notifier contract with bounded retries and a dead-letter list."""

    def __init__(
        self,
        transport: Transport = log_transport,
        config: Optional[NotificationConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._transport = transport
        self._config = config or settings.notifications
        self._clock = clock
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._jobs: list[NotificationJob] = []
        self.dead_letters: list[NotificationJob] = []
        self.delivered = 0

    def enqueue(
        self, event_type: NotificationEvent, recipient: str, payload: dict[str, Any]
    ) -> NotificationJob:
        if not recipient:
            raise ValueError(f"No recipient for {NotificationEvent(event_type).value}")
        event_type = NotificationEvent(event_type)
        max_attempts = (
            self._config.reminder_max_attempts
            if event_type == NotificationEvent.APPOINTMENT_REMINDER
            else self._config.max_attempts
        )
        job = NotificationJob(
            job_id=next(self._ids),
            event_type=event_type,
            recipient=recipient,
            payload=dict(payload),
            max_attempts=max_attempts,
            next_attempt_at=self._clock(),
        )
        with self._lock:
            self._jobs.append(job)
        logger.debug("Queued %s job %d for %s", event_type.value, job.job_id, recipient)
        return job

    def backoff(self, attempts: int) -> timedelta:
        """Delay before the next attempt after ``attempts`` failures."""
        return timedelta(seconds=self._config.backoff_seconds * (2 ** (attempts - 1)))

    def process_due(self, now: Optional[datetime] = None) -> int:
        """Attempt every pending job whose retry time has come. Returns attempts made."""
        now = now or self._clock()
        with self._lock:
            due = [j for j in self._jobs if j.state == JobState.PENDING and j.next_attempt_at <= now]

        for job in due:
            job.attempts += 1
            try:
                self._transport(job)
            except Exception as exc:
                job.errors.append(str(exc))
                if job.attempts >= job.max_attempts:
                    job.state = JobState.DEAD
                    with self._lock:
                        self.dead_letters.append(job)
                    logger.error(
                        "Job %d (%s) moved to dead letter after %d attempts: %s",
                        job.job_id, job.event_type.value, job.attempts, exc,
                    )
                else:
                    job.next_attempt_at = now + self.backoff(job.attempts)
                    logger.warning(
                        "Job %d (%s) failed attempt %d/%d: %s",
                        job.job_id, job.event_type.value, job.attempts, job.max_attempts, exc,
                    )
                continue
            job.state = JobState.COMPLETED
        with self._lock:
            completed = sum(1 for j in self._jobs if j.state == JobState.COMPLETED)
            self._jobs = [j for j in self._jobs if j.state == JobState.PENDING]
            self.delivered += completed
        return len(due)

    def jobs(self, state: Optional[JobState] = None) -> list[NotificationJob]:
        """Jobs still held: pending ones plus dead letters.

        Delivered jobs are dropped at the end of each pass and only counted
        in ``delivered``.
        """
        with self._lock:
            held = [*self._jobs, *self.dead_letters]
        return [j for j in held if state is None or j.state == state]
