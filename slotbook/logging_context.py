"""Correlation IDs for booking operations.

Every public BookingService and ProviderService call starts a fresh
``REQ-...`` id, so the availability check, the state transition and the
notifications it queues all log under one id. The reminder scheduler runs
each scan (and each manual trigger) inside ``request_scope`` so that a scan
on the background loop does not leave its id behind for whatever logs next
in that context.

Loggers obtained through ``get_request_logger`` carry a filter that copies
the current id onto each record as ``request_id``, so a handler format
that names ``%(request_id)s`` can show it.

Usage:
    from slotbook.logging_context import get_request_logger, request_scope

    logger = get_request_logger(__name__)
    with request_scope() as request_id:
        logger.info("Reminder scan started")  # record.request_id == request_id
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

NO_REQUEST_ID = "NO_REQUEST_ID"

_request_id: ContextVar[str] = ContextVar("request_id", default=NO_REQUEST_ID)


def new_request_id() -> str:
    return f"REQ-{uuid.uuid4().hex[:12]}"


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the correlation ID for the current context, generating one if omitted."""
    value = request_id or new_request_id()
    _request_id.set(value)
    return value


def get_request_id() -> str:
    return _request_id.get()


@contextmanager
def request_scope(request_id: Optional[str] = None) -> Iterator[str]:
    """Run a block under its own correlation ID, restoring the previous one on exit."""
    value = request_id or new_request_id()
    token = _request_id.set(value)
    try:
        yield value
    finally:
        _request_id.reset(token)


class RequestIdFilter(logging.Filter):
    """Copies the current correlation ID onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        return True


def get_request_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger
