"""Tests for shared utility functions and request-id logging."""

import logging
import re
from datetime import date, datetime

import pytest

from slotbook.logging_context import (
    RequestIdFilter,
    get_request_id,
    get_request_logger,
    request_scope,
    set_request_id,
)
from slotbook.utils import as_calendar_day, combine, generate_appointment_id


class TestAppointmentIds:
    def test_format(self):
        moment = datetime(2030, 1, 7, 9, 0)
        appointment_id = generate_appointment_id(moment)
        millis = int(moment.timestamp() * 1000)
        assert re.fullmatch(rf"APT-{millis}-[A-Z0-9]{{9}}", appointment_id)

    def test_ids_are_distinct(self):
        moment = datetime(2030, 1, 7, 9, 0)
        assert len({generate_appointment_id(moment) for _ in range(200)}) == 200


class TestDateHelpers:
    def test_datetime_truncated(self):
        assert as_calendar_day(datetime(2030, 1, 7, 23, 59)) == date(2030, 1, 7)

    def test_date_passthrough(self):
        assert as_calendar_day(date(2030, 1, 7)) == date(2030, 1, 7)

    def test_combine(self):
        assert combine(date(2030, 1, 7), 9 * 60 + 30) == datetime(2030, 1, 7, 9, 30)


class TestRequestId:
    def test_generated_id_format(self):
        request_id = set_request_id()
        assert re.fullmatch(r"REQ-[0-9a-f]{12}", request_id)
        assert get_request_id() == request_id

    def test_explicit_id(self):
        set_request_id("REQ-test")
        assert get_request_id() == "REQ-test"

    def test_filter_injects_request_id(self):
        set_request_id("REQ-filter")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        assert RequestIdFilter().filter(record)
        assert record.request_id == "REQ-filter"

    def test_scope_restores_previous_id(self):
        set_request_id("REQ-outer")
        with request_scope() as inner:
            assert re.fullmatch(r"REQ-[0-9a-f]{12}", inner)
            assert get_request_id() == inner
        assert get_request_id() == "REQ-outer"

    def test_scope_restores_after_error(self):
        set_request_id("REQ-outer")
        with pytest.raises(RuntimeError):
            with request_scope("REQ-inner"):
                assert get_request_id() == "REQ-inner"
                raise RuntimeError("scan failed")
        assert get_request_id() == "REQ-outer"

    def test_filter_attached_once(self):
        logger = get_request_logger("slotbook.tests.once")
        get_request_logger("slotbook.tests.once")
        assert sum(isinstance(f, RequestIdFilter) for f in logger.filters) == 1
