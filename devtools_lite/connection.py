"""CDP WebSocket connection management.

Provides CDPConnection, the client session: it opens the socket with retry and
timeout, runs the background receive loop, correlates replies to requests by
id and hands unsolicited events to the EventDispatcher.
"""

import asyncio
import logging
from typing import Any, Mapping, Optional, Set

try:
    import websockets
    from websockets.exceptions import ConnectionClosed, ConnectionClosedOK
except ImportError:
    raise ImportError(
        "websockets library not found. Install with: pip3 install websockets"
    )

from .channel import DEFAULT_QUEUE_SIZE, MessageChannel
from .events import EventDispatcher, EventHandler
from .exceptions import (
    CDPDecodeError,
    CDPError,
    CDPProtocolError,
    CDPTimeoutError,
    ConnectionClosedError,
    ConnectionFailedError,
    SessionTerminatedError,
)
from .logging_setup import log_with_context
from .protocol import (
    NORMAL_CLOSE_CODES,
    TERMINAL_DETACH_REASONS,
    decode_frame,
    detach_reason,
    encode_request,
)
from .retry import DEFAULT_TIMEOUT, RetryPolicy, with_retry, with_timeout
from .targets import resolve_ws_url

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 2_097_152  # 2MB, enough for large DOM snapshots


class CDPConnection:
    """Manages the WebSocket connection to a Chrome DevTools Protocol endpoint.

    Handles:
    - Connection lifecycle (connect with retry, close, context manager)
    - Command execution with per-request timeout
    - Reply correlation by request id, safe for concurrent send() calls
    - Event subscription and the page-load ready flag
    - Inspector.detached handling and domain replay after reconnection

    Usage:
        async with CDPConnection("http://localhost:9222") as conn:
            result = await conn.send("Runtime.evaluate", {"expression": "1+1"})
            conn.subscribe("Console.messageAdded", my_callback)

    Attributes:
        endpoint: ws:// debugger URL, or http:// address resolved on connect
        ws_url: WebSocket URL actually used (None until resolved)
        timeout: Default command timeout in seconds
        max_size: Maximum WebSocket message size in bytes
        retry_policy: Attempts, delay and per-attempt timeout for connect()
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: Optional[float] = None,
        max_size: int = DEFAULT_MAX_SIZE,
        retry_policy: Optional[RetryPolicy] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        """Initialize CDP connection.

        Args:
            endpoint: ws://localhost:9222/devtools/page/ABC123 or http://localhost:9222
            timeout: Default command timeout in seconds (default: retry_policy.timeout)
            max_size: Maximum WebSocket message size in bytes
            retry_policy: Connect retry policy (default: 3 attempts, 1s delay, 5s timeout)
            queue_size: Capacity of the inbound event queue
        """
        if not endpoint.startswith(("ws://", "wss://", "http://", "https://")):
            raise ValueError(f"Invalid CDP endpoint: {endpoint}")

        self.endpoint = endpoint
        self.ws_url: Optional[str] = (
            endpoint if endpoint.startswith(("ws://", "wss://")) else None
        )
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout if timeout is not None else self.retry_policy.timeout
        self.max_size = max_size
        self.queue_size = queue_size

        # Connection state
        self._ws = None
        self._is_connected: bool = False
        self._next_id: int = 1
        self._channel: Optional[MessageChannel] = None
        self._events = EventDispatcher()
        self._receive_task: Optional[asyncio.Task] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._enabled_domains: Set[str] = set()  # For domain replay after reconnection
        self._termination_reason: Optional[str] = None
        self._connect_lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config, endpoint: Optional[str] = None) -> "CDPConnection":
        """Build a connection from a Configuration instance."""
        return cls(
            endpoint or config.endpoint,
            timeout=config.timeout,
            max_size=config.max_size,
            retry_policy=config.retry_policy(),
            queue_size=config.queue_size,
        )

    @property
    def is_connected(self) -> bool:
        """True while a socket is held and its receive loop is running."""
        if not self._is_connected or self._ws is None:
            return False
        return self._receive_task is not None and not self._receive_task.done()

    @property
    def next_id(self) -> int:
        """Identifier the next request will use."""
        return self._next_id

    @property
    def page_loaded(self) -> bool:
        """True once Page.loadEventFired has been observed."""
        return self._events.page_loaded

    @property
    def termination_reason(self) -> Optional[str]:
        """Inspector.detached reason that ended the session, if any."""
        return self._termination_reason

    @property
    def events(self) -> EventDispatcher:
        return self._events

    async def connect(self, *, retry_policy: Optional[RetryPolicy] = None) -> "CDPConnection":
        """Establish WebSocket connection and start the background tasks.

        A no-op when already connected.

        Args:
            retry_policy: Override of self.retry_policy for this call

        Returns:
            self

        Raises:
            ConnectionFailedError: If every attempt failed
            CDPTimeoutError: If the last attempt did not complete in time
        """
        async with self._connect_lock:
            if self.is_connected:
                logger.debug("Client already connected")
                return self
            await self._open(retry_policy or self.retry_policy)
            return self

    async def _open(self, policy: RetryPolicy) -> None:
        await self._release()

        attempts = 0

        async def attempt():
            nonlocal attempts
            attempts += 1
            return await with_timeout(
                self._open_socket(policy.timeout),
                policy.timeout,
                message=f"Connection timeout after {policy.timeout} seconds",
            )

        try:
            ws = await with_retry(
                attempt,
                max_attempts=policy.max_attempts,
                retry_delay=policy.retry_delay,
                description=f"Connecting to {self.endpoint}",
            )
        except CDPTimeoutError:
            raise
        except Exception as e:
            raise ConnectionFailedError(
                f"Failed to connect to {self.endpoint}: {e}",
                details={"url": self.endpoint, "attempts": attempts, "error": str(e)},
            ) from e

        self._ws = ws
        self._channel = MessageChannel(self.queue_size)
        self._is_connected = True
        self._termination_reason = None
        self._receive_task = asyncio.create_task(self._receive_loop(ws, self._channel))
        self._dispatch_task = asyncio.create_task(self._events.run(self._channel))

        log_with_context(
            logger,
            logging.INFO,
            "CDP connection established",
            ws_url=self.ws_url,
            attempts=attempts,
        )

    async def _open_socket(self, timeout: Optional[float]):
        if self.endpoint.startswith(("ws://", "wss://")):
            self.ws_url = self.endpoint
        else:
            self.ws_url = await asyncio.to_thread(
                resolve_ws_url, self.endpoint, timeout or DEFAULT_TIMEOUT
            )

        logger.info(f"Connecting to {self.ws_url}")
        return await websockets.connect(self.ws_url, max_size=self.max_size)

    async def close(self) -> None:
        """Close WebSocket connection gracefully. Safe to call repeatedly.

        Waits for a connect() in progress, so a session that is still
        handshaking is closed once it comes up.
        """
        async with self._connect_lock:
            if self._ws is None and self._receive_task is None and self._dispatch_task is None:
                return

            logger.info("Disconnecting CDP connection")
            await self._release()
        log_with_context(logger, logging.INFO, "CDP connection closed", ws_url=self.ws_url)

    async def _release(self) -> None:
        # The alive flag goes down before the socket so the receive loop
        # treats the resulting close as intentional.
        self._is_connected = False

        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                logger.warning(f"Error closing WebSocket: {e}")
            self._ws = None

        current = asyncio.current_task()
        for task in (self._receive_task, self._dispatch_task):
            if task is None or task is current:
                continue
            if not task.done():
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Background task failed: {e}")
        self._receive_task = None
        self._dispatch_task = None

        if self._channel is not None:
            self._channel.close(
                ConnectionClosedError("Connection closed during command execution")
            )
            self._channel = None

    async def __aenter__(self) -> "CDPConnection":
        """Context manager entry: connect automatically."""
        return await self.connect()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit: disconnect automatically."""
        await self.close()

    async def send(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        increment_id: bool = True,
        timeout: Optional[float] = None,
    ) -> dict:
        """Execute CDP command and wait for its reply.

        Reconnects once if the connection was lost, then replays enabled
        domains.

        Args:
            method: CDP method name (e.g., "Runtime.evaluate", "Page.enable")
            params: Method parameters (default: empty dict)
            increment_id: False re-sends under the current id without consuming it
            timeout: Command timeout in seconds (default: self.timeout)

        Returns:
            Command result dict (contents of "result" field in response)

        Raises:
            SessionTerminatedError: If Chrome reported the target gone
            ConnectionFailedError: If the reconnection attempt failed
            ConnectionClosedError: If the connection dropped mid-request
            CDPTimeoutError: If no reply arrived in time
            CDPProtocolError: If Chrome returned an error response
            InvalidCommandError: If the request could not be encoded
        """
        if not self.is_connected:
            if self._termination_reason is not None:
                raise SessionTerminatedError(
                    "Cannot send command: debugging target is gone",
                    reason=self._termination_reason,
                )
            logger.warning("WebSocket not connected, attempting reconnection")
            async with self._connect_lock:
                if not self.is_connected:
                    await self._open(self.retry_policy)
                    await self._replay_domains()

        return await self._request(
            method, params, increment_id=increment_id, timeout=timeout
        )

    async def _request(
        self,
        method: str,
        params: Optional[Mapping[str, Any]],
        *,
        increment_id: bool = True,
        timeout: Optional[float] = None,
    ) -> dict:
        ws = self._ws
        channel = self._channel
        if ws is None or channel is None:
            raise ConnectionClosedError(
                "Cannot execute command: connection not active",
                details={"method": method},
            )

        cmd_id = self._next_id
        message = encode_request(cmd_id, method, params)
        future = channel.expect(cmd_id)
        if increment_id:
            self._next_id += 1

        cmd_timeout = timeout if timeout is not None else self.timeout
        try:
            try:
                async with self._send_lock:
                    await ws.send(message)
            except (ConnectionClosed, OSError, RuntimeError) as e:
                if self._ws is ws:
                    self._is_connected = False
                raise ConnectionClosedError(
                    f"Connection closed while sending {method}: {e}",
                    details={"method": method},
                ) from e
            logger.debug(f"Sent command {cmd_id}: {method}")

            response = await with_timeout(
                future, cmd_timeout, message="Command timed out", command_method=method
            )
        finally:
            # Late replies for this id are dropped by the channel from here on
            channel.discard(cmd_id)

        if "error" in response:
            error = response["error"]
            if not isinstance(error, dict):
                error = {"message": str(error)}
            raise CDPProtocolError(
                error.get("message", "Unknown CDP error"),
                method=method,
                error_code=error.get("code"),
                payload=error,
            )

        domain, _, command = method.rpartition(".")
        if command == "enable":
            self._enabled_domains.add(domain)
        elif command == "disable":
            self._enabled_domains.discard(domain)

        return response.get("result", {})

    async def _replay_domains(self) -> None:
        for domain in sorted(self._enabled_domains):
            try:
                await self._request(f"{domain}.enable", None)
                logger.debug(f"Re-enabled domain after reconnect: {domain}")
            except CDPError as e:
                logger.warning(f"Failed to re-enable {domain} after reconnect: {e}")

    def subscribe(self, event_name: str, callback: EventHandler) -> None:
        """Register a callback for a CDP event (see EventDispatcher.subscribe)."""
        self._events.subscribe(event_name, callback)

    def unsubscribe(self, event_name: str, callback: EventHandler) -> None:
        self._events.unsubscribe(event_name, callback)

    async def wait_for_load(self, timeout: Optional[float] = None) -> None:
        """Wait until Page.loadEventFired has been observed.

        Raises:
            CDPTimeoutError: If no load event arrives within timeout
        """
        if self._events.page_loaded:
            return
        wait_timeout = timeout if timeout is not None else self.timeout
        await with_timeout(
            self._events.wait_for_load(),
            wait_timeout,
            message=f"Page load not observed within {wait_timeout}s",
        )

    async def _receive_loop(self, ws, channel: MessageChannel) -> None:
        """Background task reading frames from ws until it closes.

        Replies and events go to channel. A terminal Inspector.detached ends
        the session. Malformed frames are logged and skipped.
        """
        closed_with: BaseException = ConnectionClosedError("Connection closed")
        try:
            while self._is_connected and self._ws is ws:
                try:
                    message = await ws.recv()
                except ConnectionClosed as e:
                    if not self._is_connected or self._closed_normally(e):
                        logger.debug(f"WebSocket closed normally: {e}")
                    else:
                        logger.warning(f"WebSocket connection closed: {e}")
                    closed_with = ConnectionClosedError(f"Connection closed: {e}")
                    break

                try:
                    frame = decode_frame(message)
                except CDPDecodeError as e:
                    logger.error(f"Dropping frame: {e}")
                    continue

                channel.route(frame)

                reason = detach_reason(frame)
                if reason in TERMINAL_DETACH_REASONS:
                    logger.info(f"Debugging target gone ({reason}), ending session")
                    self._termination_reason = reason
                    closed_with = SessionTerminatedError(
                        "Debugging target is gone", reason=reason
                    )
                    await self._teardown_socket(ws)
                    break

        except Exception as e:
            logger.error(f"Receive loop error: {e}", exc_info=True)
            closed_with = ConnectionClosedError(f"Receive loop error: {e}")
        finally:
            if self._ws is ws:
                self._is_connected = False
            channel.close(closed_with)

    async def _teardown_socket(self, ws) -> None:
        if self._ws is ws:
            self._is_connected = False
            self._ws = None
        try:
            await ws.close()
        except Exception as e:
            logger.debug(f"Error during WebSocket closure: {e}")

    @staticmethod
    def _closed_normally(exc: ConnectionClosed) -> bool:
        if isinstance(exc, ConnectionClosedOK):
            return True
        rcvd = getattr(exc, "rcvd", None)
        return rcvd is not None and rcvd.code in NORMAL_CLOSE_CODES
