"""
Tests for structured logging and request id propagation.
"""

import json
import logging

import pytest

from timeblock import config
from timeblock.observability import (
    HumanFormatter,
    JSONFormatter,
    RequestContext,
    RequestIdFilter,
    configure_logging,
    get_logger,
    get_request_id,
)


def _record(msg="Auto-schedule completed for %s", args=("u1",), **extra):
    record = logging.LogRecord(
        name="timeblock.time_truth.scheduler",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "timeblock.time_truth.scheduler"
        assert data["message"] == "Auto-schedule completed for u1"
        assert data["timestamp"].endswith("Z")
        assert "request_id" not in data

    def test_extra_fields_included(self):
        data = json.loads(JSONFormatter().format(_record(user_id="u1", scheduled=3)))
        assert data["user_id"] == "u1"
        assert data["scheduled"] == 3
        assert "args" not in data

    def test_request_id_attached(self):
        with RequestContext("req-test") as ctx:
            data = json.loads(JSONFormatter().format(_record()))
        assert data["request_id"] == ctx.request_id == "req-test"


class TestHumanFormatter:
    def test_line_contains_request_id_prefix(self):
        with RequestContext("req-abcdefghijklmnop"):
            line = HumanFormatter().format(_record())
        assert "[INFO] timeblock.time_truth.scheduler: [req-abcdefgh] Auto-schedule" in line


class TestRequestContext:
    def test_generated_and_reset(self):
        assert get_request_id() is None
        with RequestContext() as ctx:
            assert ctx.request_id.startswith("req-")
            assert get_request_id() == ctx.request_id
        assert get_request_id() is None

    def test_nested_contexts_restore(self):
        with RequestContext("outer"):
            with RequestContext("inner"):
                assert get_request_id() == "inner"
            assert get_request_id() == "outer"

    def test_inner_context_keeps_outer_id(self):
        with RequestContext("outer"):
            with RequestContext() as inner:
                assert inner.request_id == "outer"


class TestRequestIdFilter:
    def test_stamps_active_id(self):
        record = _record()
        with RequestContext("req-filter"):
            assert RequestIdFilter().filter(record)
        assert record.request_id == "req-filter"

    def test_explicit_id_kept(self):
        record = _record(request_id="req-explicit")
        with RequestContext("req-other"):
            RequestIdFilter().filter(record)
        assert record.request_id == "req-explicit"

    def test_stamped_id_survives_context_exit(self):
        record = _record()
        with RequestContext("req-late"):
            RequestIdFilter().filter(record)
        data = json.loads(JSONFormatter().format(record))
        assert data["request_id"] == "req-late"


class TestConfigureLogging:
    def test_json_handler(self, restore_root_logger):
        configure_logging("DEBUG", json_format=True)
        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)
        assert any(
            isinstance(f, RequestIdFilter) for f in restore_root_logger.handlers[0].filters
        )

    def test_level_from_config(self, restore_root_logger, monkeypatch):
        monkeypatch.setattr(config, "LOG_LEVEL", "WARNING")
        configure_logging(json_format=False)
        assert restore_root_logger.level == logging.WARNING
        assert isinstance(restore_root_logger.handlers[0].formatter, HumanFormatter)

    def test_get_logger(self):
        assert get_logger("timeblock.test") is logging.getLogger("timeblock.test")
