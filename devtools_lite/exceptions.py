"""Exception hierarchy for CDP operations.

All CDP-related exceptions inherit from CDPError base class.
Every public operation either returns a result or raises exactly one of these.
"""

from typing import Any, Optional


class CDPError(Exception):
    """Base exception for all CDP-related errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class CDPConnectionError(CDPError):
    """WebSocket connection failures.

    Raised when establishing or maintaining the CDP WebSocket connection fails.
    """

    pass


class ConnectionFailedError(CDPConnectionError):
    """Handshake never succeeded.

    Raised when every connection attempt allowed by the retry policy failed.
    Common causes: wrong port, Chrome not running, no page target yet.
    """

    pass


class ConnectionClosedError(CDPConnectionError):
    """Connection closed while in use.

    Raised for requests still in flight when the socket is closed, and for
    writes on a socket that has already gone away.
    """

    pass


class SessionTerminatedError(CDPConnectionError):
    """Remote debugging target is gone.

    Raised when Chrome sends Inspector.detached with a terminal reason
    (target closed, renderer crashed). The session is not reconnected
    automatically; call connect() explicitly to start over.
    """

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.reason = reason

    def __str__(self):
        if self.reason:
            return f"{self.message} (reason={self.reason})"
        return super().__str__()


class CDPCommandError(CDPError):
    """Command execution failures."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        error_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.method = method
        self.error_code = error_code


class CDPProtocolError(CDPCommandError):
    """Command returned error response.

    Raised when Chrome answers a request with an "error" object.
    Example: invalid JavaScript expression in Runtime.evaluate

    Attributes:
        payload: The remote error object exactly as received
    """

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        error_code: Optional[int] = None,
        payload: Optional[dict] = None,
    ):
        super().__init__(message, method=method, error_code=error_code)
        self.payload = payload or {}

    def __str__(self):
        if self.method:
            return f"{self.method} failed: {self.message}"
        return self.message


class InvalidCommandError(CDPCommandError):
    """Malformed command.

    Raised when a command is rejected before it is written to the socket.
    Example: method name without a domain, params that are not JSON-encodable.
    """

    pass


class CDPDecodeError(CDPError):
    """Inbound frame is not valid protocol JSON.

    Only logged by the receive loop; never surfaced to a waiting caller.
    """

    def __init__(self, message: str, raw: Any = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.raw = raw


class CDPTimeoutError(CDPError):
    """Deadline elapsed before an outcome settled.

    Raised when a command does not receive its response, or a connection
    attempt does not complete, within the timeout period.
    """

    def __init__(
        self,
        message: str,
        command_method: Optional[str] = None,
        timeout: Optional[float] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.command_method = command_method
        self.timeout = timeout

    def __str__(self):
        if self.command_method and self.timeout:
            return f"Command '{self.command_method}' timed out after {self.timeout}s"
        return self.message


class CDPTargetNotFoundError(CDPError):
    """Target discovery failures.

    Raised when requested Chrome target cannot be found.
    Example: no page target matching URL filter, invalid target ID.
    """

    def __init__(
        self,
        message: str,
        target_id: Optional[str] = None,
        url_pattern: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.target_id = target_id
        self.url_pattern = url_pattern

    def __str__(self):
        if self.target_id:
            return f"Target not found: {self.target_id}"
        if self.url_pattern:
            return f"No target matching URL pattern: {self.url_pattern}"
        return self.message
