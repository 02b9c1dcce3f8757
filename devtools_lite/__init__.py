"""Lightweight asyncio client for the Chrome DevTools Protocol.

This package provides:
- CDPConnection: WebSocket session with retry, reply correlation and events
- connect_browser / send_cdp / close: functional entry points
- Configuration and setup_logging for the ambient settings
"""

from .client import close, connect_browser, send_cdp
from .config import Configuration
from .connection import CDPConnection
from .exceptions import (
    CDPCommandError,
    CDPConnectionError,
    CDPDecodeError,
    CDPError,
    CDPProtocolError,
    CDPTargetNotFoundError,
    CDPTimeoutError,
    ConnectionClosedError,
    ConnectionFailedError,
    InvalidCommandError,
    SessionTerminatedError,
)
from .logging_setup import setup_logging
from .retry import RetryPolicy

__version__ = "0.1.0"

__all__ = [
    "CDPConnection",
    "Configuration",
    "RetryPolicy",
    "connect_browser",
    "send_cdp",
    "close",
    "setup_logging",
    "CDPError",
    "CDPConnectionError",
    "ConnectionFailedError",
    "ConnectionClosedError",
    "SessionTerminatedError",
    "CDPCommandError",
    "CDPProtocolError",
    "InvalidCommandError",
    "CDPDecodeError",
    "CDPTimeoutError",
    "CDPTargetNotFoundError",
]
