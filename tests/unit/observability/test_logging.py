"""Tests for structured logging helpers."""

from __future__ import annotations

import json
import logging
import sys

from cachesync.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    configure_logging,
    correlation_id_var,
    event_id_var,
)


def make_record(message: str = "Handling event", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="cachesync.events.handler",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=None,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogContext:
    """Tests for LogContext."""

    def test_sets_and_resets_context(self) -> None:
        with LogContext(correlation_id="req-1", event_id="evt_1"):
            assert correlation_id_var.get() == "req-1"
            assert event_id_var.get() == "evt_1"

        assert correlation_id_var.get() == ""
        assert event_id_var.get() == ""

    def test_none_values_are_skipped(self) -> None:
        with LogContext(correlation_id=None, event_id="evt_2"):
            assert correlation_id_var.get() == ""
            assert event_id_var.get() == "evt_2"

    def test_nested_contexts_restore_outer(self) -> None:
        with LogContext(correlation_id="outer"):
            with LogContext(correlation_id="inner"):
                assert correlation_id_var.get() == "inner"
            assert correlation_id_var.get() == "outer"


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_includes_context_and_extra_fields(self) -> None:
        record = make_record(key="product:1", ttl=30)

        with LogContext(correlation_id="req-1", event_id="evt_1"):
            data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "Handling event"
        assert data["level"] == "INFO"
        assert data["logger"] == "cachesync.events.handler"
        assert data["correlation_id"] == "req-1"
        assert data["event_id"] == "evt_1"
        assert data["key"] == "product:1"
        assert data["ttl"] == 30

    def test_unserializable_extra_is_stringified(self) -> None:
        data = json.loads(JsonFormatter().format(make_record(changes={1, 2})))

        assert isinstance(data["changes"], str)

    def test_exception_info(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert data["exception"]["type"] == "RuntimeError"
        assert data["exception"]["message"] == "boom"


class TestConsoleFormatter:
    """Tests for ConsoleFormatter."""

    def test_plain_format_with_context(self) -> None:
        formatter = ConsoleFormatter(use_colors=False)

        with LogContext(correlation_id="req-123", event_id="evt_1"):
            line = formatter.format(make_record())

        assert "| INFO     | cachesync.events.handler | Handling event" in line
        assert line.endswith("corr=req-123 evt=evt_1")


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_installs_single_handler(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(json_format=False, level="debug")

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, ConsoleFormatter)
            assert logging.getLogger("redis").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
