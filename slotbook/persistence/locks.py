"""
Per-key mutexes for check-then-act sequences.

Booking holds the (provider, day) and (user, day) locks across the overlap
check, the capacity check and the insert. Keys are always acquired in sorted
order so two requests touching the same pair of keys cannot deadlock.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Hashable, Iterator

logger = logging.getLogger(__name__)


def provider_day_key(provider_id: str, day: date) -> tuple[str, str, str]:
    return ("provider", provider_id, day.isoformat())


def user_day_key(user_id: str, day: date) -> tuple[str, str, str]:
    return ("user", user_id, day.isoformat())


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """Lock per key, created on first use and dropped when its last user leaves.

    ``users`` counts holders plus waiters, so an entry is only evicted when
    nobody can still be blocked on its lock.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    def _checkout(self, key: Hashable) -> threading.Lock:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _Entry()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: Hashable) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        """Acquire every distinct key in sorted order; release in reverse."""
        ordered = sorted(set(keys), key=repr)
        checked_out: list[Hashable] = []
        acquired: list[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                checked_out.append(key)
                lock.acquire()
                acquired.append(lock)
            logger.debug("Holding locks: %s", ordered)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in reversed(checked_out):
                self._checkin(key)
