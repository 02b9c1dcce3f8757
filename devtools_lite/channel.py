"""Inbound message routing between the receive loop and waiters.

Replies are delivered to a one-shot future registered under their request
id. Everything else is queued for the event dispatcher. All methods must be
called from the event loop thread that owns the connection.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from .exceptions import ConnectionClosedError, InvalidCommandError
from .protocol import is_reply

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1024


class MessageChannel:
    """Per-connection handoff point for decoded frames.

    Attributes:
        maxsize: Capacity of the event queue; oldest events are dropped when full
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self.maxsize = maxsize
        self._pending: Dict[int, asyncio.Future] = {}
        self._events: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed_with: Optional[BaseException] = None

    @property
    def closed(self) -> bool:
        return self._closed_with is not None

    @property
    def pending_ids(self):
        return sorted(self._pending)

    def expect(self, msg_id: int) -> asyncio.Future:
        """Register a completion slot for a request about to be sent.

        Raises:
            ConnectionClosedError: If the channel was already closed
            InvalidCommandError: If msg_id is already in flight
        """
        if self._closed_with is not None:
            raise ConnectionClosedError(
                "Cannot send command: connection closed",
                details={"reason": str(self._closed_with)},
            )
        if msg_id in self._pending:
            raise InvalidCommandError(
                f"Request id {msg_id} is already in flight",
                details={"id": msg_id},
            )

        future = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future
        return future

    def discard(self, msg_id: int) -> None:
        """Drop the slot for msg_id; later replies for it are ignored."""
        future = self._pending.pop(msg_id, None)
        if future is not None and not future.done():
            future.cancel()

    def route(self, frame: Dict[str, Any]) -> bool:
        """Deliver a decoded frame.

        Returns:
            True if the frame resolved a pending request
        """
        if is_reply(frame):
            msg_id = frame["id"]
            future = self._pending.pop(msg_id, None) if isinstance(msg_id, int) else None
            if future is None or future.done():
                logger.debug(f"Dropping reply with no waiter: id={msg_id}")
                return False
            future.set_result(frame)
            return True

        self._put_event(frame)
        return False

    def _put_event(self, frame: Dict[str, Any]) -> None:
        if self._events.full():
            dropped = self._events.get_nowait()
            logger.warning(
                f"Event queue full ({self.maxsize}), dropping {dropped.get('method')}"
            )
        self._events.put_nowait(frame)

    async def next_event(self) -> Dict[str, Any]:
        """Wait for the next unsolicited frame."""
        return await self._events.get()

    def close(self, exc: BaseException) -> None:
        """Fail every in-flight request with exc and refuse new ones."""
        if self._closed_with is None:
            self._closed_with = exc
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()
