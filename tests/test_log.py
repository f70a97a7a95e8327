"""Tests for faultpost.log."""

from __future__ import annotations

import io
import logging

import orjson
import structlog

from faultpost.log import _stream_isatty, _to_logging_level, configure_logging


class TestToLoggingLevel:
    def test_standard_levels(self) -> None:
        assert _to_logging_level("DEBUG") == logging.DEBUG
        assert _to_logging_level("INFO") == logging.INFO
        assert _to_logging_level("ERROR") == logging.ERROR

    def test_warn_alias(self) -> None:
        assert _to_logging_level("warn") == logging.WARNING

    def test_unknown_defaults_to_info(self) -> None:
        assert _to_logging_level("CUSTOM") == logging.INFO


class TestStreamIsatty:
    def test_stringio_is_not_tty(self) -> None:
        assert _stream_isatty(io.StringIO()) is False

    def test_object_without_isatty(self) -> None:
        assert _stream_isatty(object()) is False


class TestConfigureLogging:
    def test_json_output(self) -> None:
        buf = io.StringIO()
        handler = configure_logging(level="INFO", stream=buf)
        try:
            structlog.get_logger("faultpost").warning("Notification delivery failed", endpoint="http://x")
        finally:
            logging.getLogger("faultpost").removeHandler(handler)

        line = orjson.loads(buf.getvalue().strip().splitlines()[-1])
        assert line["message"] == "Notification delivery failed"
        assert line["endpoint"] == "http://x"
        assert line["level"] == "warning"
        assert "timestamp" in line

    def test_repeated_calls_do_not_duplicate_output(self) -> None:
        buf = io.StringIO()
        configure_logging(stream=buf)
        handler = configure_logging(stream=buf)
        try:
            structlog.get_logger("faultpost").warning("Notification delivery failed")
        finally:
            logging.getLogger("faultpost").removeHandler(handler)

        assert len(buf.getvalue().strip().splitlines()) == 1
        assert logging.getLogger("faultpost").handlers == []

    def test_keeps_existing_handlers_when_asked(self) -> None:
        log = logging.getLogger("faultpost")
        existing = logging.NullHandler()
        log.addHandler(existing)
        handler = configure_logging(stream=io.StringIO(), clear_handlers=False)
        try:
            assert log.handlers == [existing, handler]
        finally:
            log.removeHandler(handler)
            log.removeHandler(existing)

    def test_level_filters(self) -> None:
        buf = io.StringIO()
        handler = configure_logging(level="WARNING", stream=buf)
        try:
            structlog.get_logger("faultpost").info("Notification delivered")
        finally:
            logging.getLogger("faultpost").removeHandler(handler)
        assert buf.getvalue() == ""

    def test_console_output(self) -> None:
        buf = io.StringIO()
        handler = configure_logging(json_logs=False, stream=buf)
        try:
            structlog.get_logger("faultpost").info("faultpost ready")
        finally:
            logging.getLogger("faultpost").removeHandler(handler)
        assert "faultpost ready" in buf.getvalue()
