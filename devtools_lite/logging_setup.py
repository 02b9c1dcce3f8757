"""Structured logging setup for devtools_lite.

Provides JSON and text logging formats with support for quiet and verbose modes.

Note: Named logging_setup.py to avoid conflicts with Python's built-in logging module.
"""

import sys
import json
import logging
from typing import Optional, Dict, Any, Union
from datetime import datetime

PACKAGE_LOGGER = "devtools_lite"


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON for machine-parseable output.

    Example output:
        {"timestamp": "2025-10-24T23:30:00.123Z", "level": "INFO",
         "logger": "devtools_lite.connection", "message": "CDP connection established",
         "extra": {"ws_url": "ws://localhost:9222/devtools/page/ABC", "attempts": 1}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields attached by log_with_context
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            log_data["extra"] = record.extra

        if record.levelno == logging.DEBUG:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Formats log records as human-readable text.

    Example output:
        2025-10-24 23:30:00 [INFO] devtools_lite.connection: CDP connection established
    """

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict) and extra:
            text += " (" + ", ".join(f"{k}={v}" for k, v in extra.items()) + ")"
        return text


def setup_logging(
    format_type: str = "text",
    level: Optional[str] = None,
    quiet: bool = False,
    verbose: bool = False,
) -> None:
    """Configure logging with specified format and level.

    Args:
        format_type: Output format - "json" or "text" (default: "text")
        level: Logging level - "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"
               If None, determined by quiet/verbose flags
        quiet: Suppress all output except errors (sets level to ERROR)
        verbose: Enable debug output (sets level to DEBUG)

    Precedence for level determination:
        1. quiet flag → ERROR
        2. verbose flag → DEBUG
        3. explicit level argument → as specified
        4. default → INFO
    """
    if quiet:
        log_level = logging.ERROR
    elif verbose:
        log_level = logging.DEBUG
    elif level:
        log_level = getattr(logging, level.upper(), logging.INFO)
    else:
        log_level = logging.INFO

    formatter: Union[JSONFormatter, TextFormatter]
    if format_type == "json":
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger(PACKAGE_LOGGER).setLevel(log_level)


def log_with_context(
    logger: logging.Logger, level: int, message: str, **extra_fields
) -> None:
    """Log message with extra context fields (useful for JSON logging).

    Example:
        log_with_context(
            logger, logging.INFO, "CDP connection established",
            ws_url="ws://localhost:9222/...", attempts=2
        )
    """
    if not logger.isEnabledFor(level):
        return

    if extra_fields:
        record = logger.makeRecord(
            logger.name, level, "(log_with_context)", 0, message, (), None
        )
        record.extra = extra_fields
        logger.handle(record)
    else:
        logger.log(level, message)
