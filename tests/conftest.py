"""Shared fixtures: a scripted stand-in for a Chrome page WebSocket."""

import asyncio
import json
from unittest.mock import patch

import pytest
from websockets.exceptions import ConnectionClosedOK

from devtools_lite.retry import RetryPolicy


def reply_ok(request: dict) -> list:
    """Answer every request with an empty result."""
    return [{"id": request["id"], "result": {}}]


class FakeWebSocket:
    """Minimal WebSocket double.

    Requests written with send() are recorded in .sent and passed to the
    responder, whose returned frames are queued for recv().
    """

    def __init__(self, responder=reply_ok):
        self.responder = responder
        self.sent = []
        self.close_calls = 0
        self.closed = False
        self._inbound = asyncio.Queue()

    @property
    def sent_ids(self):
        return [message["id"] for message in self.sent]

    @property
    def sent_methods(self):
        return [message["method"] for message in self.sent]

    def push(self, frame) -> None:
        if not isinstance(frame, (str, bytes)):
            frame = json.dumps(frame)
        self._inbound.put_nowait(frame)

    def fail(self, exc: BaseException) -> None:
        """Make the next recv() raise exc."""
        self._inbound.put_nowait(exc)

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        request = json.loads(message)
        self.sent.append(request)
        if self.responder is not None:
            for frame in self.responder(request) or ():
                self.push(frame)

    async def recv(self):
        item = await self._inbound.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._inbound.put_nowait(ConnectionClosedOK(None, None))


class SocketFactory:
    """Replacement for websockets.connect handing out FakeWebSockets.

    Entries in .failures are consumed one per call before any socket is
    created: exceptions are raised, numbers are slept (to provoke timeouts).
    """

    def __init__(self):
        self.responder = reply_ok
        self.failures = []
        self.calls = 0
        self.sockets = []
        self.mock = None

    async def __call__(self, url, **kwargs):
        self.calls += 1
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, (int, float)):
                await asyncio.sleep(failure)
            else:
                raise failure
        ws = FakeWebSocket(self.responder)
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]


@pytest.fixture
def socket_factory():
    factory = SocketFactory()
    with patch(
        "devtools_lite.connection.websockets.connect", side_effect=factory
    ) as mock_connect:
        factory.mock = mock_connect
        yield factory


@pytest.fixture
def fast_policy():
    return RetryPolicy(max_attempts=3, retry_delay=0, timeout=1.0)


@pytest.fixture
def wait_until():
    async def _wait_until(predicate, timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not reached in time")
            await asyncio.sleep(0.01)

    return _wait_until
