"""Tests for log formatting."""

import logging
import re

import pytest

from confbridge.core.logging import OptionalExtraFormatter, configure_logging


@pytest.fixture
def root_handlers():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield root
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def _record(**extra):
    record = logging.LogRecord("confbridge.test", logging.INFO, __file__, 1, "DN %s merged", ("5017",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestOptionalExtraFormatter:
    def test_appends_present_extras(self):
        formatter = OptionalExtraFormatter("%(message)s")
        line = formatter.format(_record(call_id="call-1", rule="route-point-885016"))
        assert line == "DN 5017 merged call_id=call-1 rule=route-point-885016"

    def test_plain_record_has_no_suffix(self):
        formatter = OptionalExtraFormatter("%(message)s")
        assert formatter.format(_record()) == "DN 5017 merged"
        assert formatter.format(_record(call_id="")) == "DN 5017 merged"


class TestConfigureLogging:
    def test_single_handler_with_millisecond_timestamps(self, root_handlers):
        configure_logging("debug")
        configure_logging("info")

        assert len(root_handlers.handlers) == 1
        assert root_handlers.level == logging.INFO
        line = root_handlers.handlers[0].formatter.format(_record(call_id="call-1"))
        assert re.match(r"^\d{2}:\d{2}:\d{2}\.\d{3} INFO \[test_logging\] DN 5017 merged call_id=call-1$", line)
