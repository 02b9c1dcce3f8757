"""Integration tests for CDPConnection with real Chrome.

Requires Chrome started with --remote-debugging-port. The endpoint is taken
from CDP_TEST_ENDPOINT (default http://localhost:9222); tests are skipped
when nothing answers there.
"""

import asyncio
import os

import pytest

from devtools_lite.connection import CDPConnection
from devtools_lite.exceptions import CDPError, CDPProtocolError, CDPTimeoutError
from devtools_lite.retry import RetryPolicy
from devtools_lite.targets import resolve_ws_url

ENDPOINT = os.getenv("CDP_TEST_ENDPOINT", "http://localhost:9222")


@pytest.fixture(scope="module")
def ws_url():
    """WebSocket URL of the first page target, or skip."""
    try:
        return resolve_ws_url(ENDPOINT, timeout=2.0)
    except CDPError as e:
        pytest.skip(f"No Chrome debugging endpoint at {ENDPOINT}: {e}")


def live_connection(ws_url: str, **kwargs) -> CDPConnection:
    return CDPConnection(
        ws_url, retry_policy=RetryPolicy(max_attempts=2, retry_delay=0.5, timeout=5.0), **kwargs
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_connection_lifecycle(ws_url):
    conn = live_connection(ws_url)
    assert not conn.is_connected

    await conn.connect()
    assert conn.is_connected
    assert conn.next_id == 1

    await conn.close()
    assert not conn.is_connected


@pytest.mark.integration
@pytest.mark.asyncio
async def test_navigate_and_evaluate(ws_url):
    async with live_connection(ws_url) as conn:
        await conn.send("Page.enable")
        await conn.send("Runtime.enable")
        conn.events.reset_load_state()

        result = await conn.send("Page.navigate", {"url": "data:text/html,<title>Lite</title>"})
        assert "frameId" in result

        await conn.wait_for_load(timeout=5.0)
        assert conn.page_loaded

        evaluated = await conn.send(
            "Runtime.evaluate", {"expression": "document.title", "returnByValue": True}
        )
        assert evaluated["result"]["value"] == "Lite"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_console_event_subscription(ws_url):
    received_messages = []

    async def on_console_message(params: dict):
        received_messages.append(params)

    async with live_connection(ws_url) as conn:
        await conn.send("Runtime.enable")
        conn.subscribe("Runtime.consoleAPICalled", on_console_message)

        await conn.send("Runtime.evaluate", {"expression": "console.log('Test message')"})

        for _ in range(50):
            if received_messages:
                break
            await asyncio.sleep(0.05)

    assert received_messages
    assert received_messages[0]["args"][0]["value"] == "Test message"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unknown_method_raises_protocol_error(ws_url):
    async with live_connection(ws_url) as conn:
        with pytest.raises(CDPProtocolError):
            await conn.send("NonExistent.invalidMethod")


@pytest.mark.integration
@pytest.mark.asyncio
async def test_command_timeout_with_real_chrome(ws_url):
    async with live_connection(ws_url) as conn:
        with pytest.raises(CDPTimeoutError):
            await conn.send(
                "Runtime.evaluate",
                {
                    "expression": "new Promise(resolve => setTimeout(resolve, 1000))",
                    "awaitPromise": True,
                },
                timeout=0.1,
            )

        # The late reply for the timed-out request must not confuse the next one
        result = await conn.send(
            "Runtime.evaluate", {"expression": "2 * 3", "returnByValue": True}
        )
        assert result["result"]["value"] == 6
