"""Tests for the structured logging system (recon_kernel/logging_config.py)."""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from io import StringIO

import pytest

from recon_engines.types import Severity
from recon_kernel.exceptions import MalformedRecordError
from recon_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "recon_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("flagged", extra={"total_flagged": 3, "identifier": "SHP-1"})

        record = _parse_log(stream)
        assert record["total_flagged"] == 3
        assert record["identifier"] == "SHP-1"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", session_key="dock-4")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["session_key"] == "dock-4"

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("values", extra={
            "severity": Severity.HIGH,
            "ratio": Decimal("0.125"),
            "at": datetime(2025, 3, 10, 8, 0, tzinfo=UTC),
            "types": ("shortage", "overage"),
        })

        record = _parse_log(stream)
        assert record["severity"] == "high"
        assert record["ratio"] == "0.125"
        assert record["at"] == "2025-03-10T08:00:00+00:00"
        assert record["types"] == ["shortage", "overage"]

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise MalformedRecordError("scan", "observed_quantity", "is missing", "SHP-9")
        except MalformedRecordError:
            get_logger("test").error("intake_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "MALFORMED_RECORD"
        assert record["exc_type"] == "MalformedRecordError"
        assert record["exc_stream"] == "scan"
        assert record["exc_identifier"] == "SHP-9"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "session_key" not in record

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", session_key="y")
        assert LogContext.get_all() == {"correlation_id": "x", "session_key": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(session_key="outer")
        with LogContext.bind(session_key="inner"):
            assert LogContext.get_all()["session_key"] == "inner"
        assert LogContext.get_all()["session_key"] == "outer"

    def test_bind_restores_none(self):
        assert "run_id" not in LogContext.get_all()
        with LogContext.bind(run_id="temp"):
            assert LogContext.get_all()["run_id"] == "temp"
        assert "run_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(unknown_field="x", category="safety"):
            assert LogContext.get_all() == {"category": "safety"}

    def test_all_fields(self):
        LogContext.set(correlation_id="c", session_key="s", run_id="r", category="k")
        assert len(LogContext.get_all()) == 4


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        assert len(logging.getLogger("recon_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("engines.matching").name == "recon_kernel.engines.matching"

    def test_logger_hierarchy(self):
        """Child loggers inherit the recon_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "recon_kernel.deep.nested.module"

    def test_reset_restores_propagation(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        reset_logging()
        root = logging.getLogger("recon_kernel")
        assert root.handlers == []
        assert root.propagate is True
