"""Unit tests for log formatting and setup."""

import io
import json
import logging

import pytest

from devtools_lite.logging_setup import (
    JSONFormatter,
    TextFormatter,
    log_with_context,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    package_level = logging.getLogger("devtools_lite").level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("devtools_lite").setLevel(package_level)


@pytest.fixture
def capture():
    """Logger writing through a StringIO handler; returns (logger, stream, handler)."""
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    logger = logging.getLogger("devtools_lite.tests.capture")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.addHandler(handler)
    yield logger, stream, handler
    logger.removeHandler(handler)


@pytest.mark.unit
class TestFormatters:
    def test_json_formatter(self, capture):
        logger, stream, handler = capture
        handler.setFormatter(JSONFormatter())

        logger.info("Connected")

        entry = json.loads(stream.getvalue())
        assert entry["level"] == "INFO"
        assert entry["logger"] == "devtools_lite.tests.capture"
        assert entry["message"] == "Connected"
        assert entry["timestamp"].endswith("Z")
        assert "location" not in entry

    def test_json_formatter_debug_location(self, capture):
        logger, stream, handler = capture
        handler.setFormatter(JSONFormatter())

        logger.debug("Sent command 1: Page.enable")

        assert json.loads(stream.getvalue())["location"]["function"] == (
            "test_json_formatter_debug_location"
        )

    def test_json_formatter_exception(self, capture):
        logger, stream, handler = capture
        handler.setFormatter(JSONFormatter())

        try:
            raise RuntimeError("socket exploded")
        except RuntimeError:
            logger.error("Receive loop error", exc_info=True)

        assert "socket exploded" in json.loads(stream.getvalue())["exception"]

    def test_text_formatter(self, capture):
        logger, stream, handler = capture
        handler.setFormatter(TextFormatter())

        logger.warning("WebSocket not connected")

        assert "[WARNING] devtools_lite.tests.capture: WebSocket not connected" in stream.getvalue()


@pytest.mark.unit
class TestLogWithContext:
    def test_extra_fields_in_json(self, capture):
        logger, stream, handler = capture
        handler.setFormatter(JSONFormatter())

        log_with_context(logger, logging.INFO, "CDP connection established", attempts=2)

        assert json.loads(stream.getvalue())["extra"] == {"attempts": 2}

    def test_extra_fields_in_text(self, capture):
        logger, stream, handler = capture
        handler.setFormatter(TextFormatter())

        log_with_context(logger, logging.INFO, "CDP connection closed", ws_url="ws://x")

        assert stream.getvalue().strip().endswith("CDP connection closed (ws_url=ws://x)")

    def test_respects_logger_level(self, capture):
        logger, stream, handler = capture
        logger.setLevel(logging.WARNING)

        log_with_context(logger, logging.INFO, "hidden", attempts=1)

        assert stream.getvalue() == ""


@pytest.mark.unit
class TestSetupLogging:
    def test_json_format_installed(self, restore_root_logger):
        setup_logging(format_type="json", level="debug")

        root = restore_root_logger
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("devtools_lite").level == logging.DEBUG

    def test_quiet_beats_verbose(self, restore_root_logger):
        setup_logging(quiet=True, verbose=True)
        assert restore_root_logger.level == logging.ERROR

    def test_verbose(self, restore_root_logger):
        setup_logging(verbose=True)
        assert restore_root_logger.level == logging.DEBUG

    def test_default_text_info(self, restore_root_logger):
        setup_logging()
        root = restore_root_logger
        assert root.level == logging.INFO
        assert isinstance(root.handlers[0].formatter, TextFormatter)
