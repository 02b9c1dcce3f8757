"""Unit tests for EventDispatcher."""

import asyncio

import pytest

from devtools_lite.channel import MessageChannel
from devtools_lite.events import EventDispatcher


@pytest.mark.unit
@pytest.mark.asyncio
class TestEventDispatcher:
    async def test_load_event_sets_ready(self):
        dispatcher = EventDispatcher()
        waiter = asyncio.create_task(dispatcher.wait_for_load())
        await asyncio.sleep(0)

        await dispatcher.dispatch({"method": "Page.loadEventFired", "params": {"timestamp": 1.5}})

        await asyncio.wait_for(waiter, 1.0)
        assert dispatcher.page_loaded

    async def test_reset_load_state(self):
        dispatcher = EventDispatcher()
        await dispatcher.dispatch({"method": "Page.loadEventFired"})
        dispatcher.reset_load_state()

        assert not dispatcher.page_loaded
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(dispatcher.wait_for_load(), 0.01)

    async def test_async_and_sync_handlers(self):
        dispatcher = EventDispatcher()
        seen = []

        async def async_handler(params):
            seen.append(("async", params))

        dispatcher.subscribe("Console.messageAdded", async_handler)
        dispatcher.subscribe("Console.messageAdded", lambda params: seen.append(("sync", params)))

        await dispatcher.dispatch({"method": "Console.messageAdded", "params": {"n": 1}})

        assert seen == [("async", {"n": 1}), ("sync", {"n": 1})]

    async def test_handler_error_is_isolated(self, caplog):
        dispatcher = EventDispatcher()
        seen = []

        def broken(params):
            raise RuntimeError("handler bug")

        dispatcher.subscribe("Network.responseReceived", broken)
        dispatcher.subscribe("Network.responseReceived", seen.append)

        await dispatcher.dispatch({"method": "Network.responseReceived", "params": {"r": 1}})

        assert seen == [{"r": 1}]
        assert "Event handler error for Network.responseReceived" in caplog.text

    async def test_unsubscribe(self, caplog):
        dispatcher = EventDispatcher()
        seen = []
        dispatcher.subscribe("Page.frameNavigated", seen.append)
        dispatcher.unsubscribe("Page.frameNavigated", seen.append)
        dispatcher.unsubscribe("Page.frameNavigated", seen.append)

        await dispatcher.dispatch({"method": "Page.frameNavigated", "params": {}})

        assert seen == []
        assert "Callback not found" in caplog.text

    async def test_unknown_and_shapeless_frames_are_ignored(self):
        dispatcher = EventDispatcher()
        await dispatcher.dispatch({"method": "Future.somethingNew", "params": {"x": 1}})
        await dispatcher.dispatch({"weird": True})
        assert not dispatcher.page_loaded

    async def test_detach_warning(self, caplog):
        dispatcher = EventDispatcher()
        await dispatcher.dispatch(
            {"method": "Inspector.detached", "params": {"reason": "replaced_with_devtools"}}
        )
        assert "detached: replaced_with_devtools" in caplog.text

    async def test_malformed_params_reach_handlers_as_empty_dict(self, caplog):
        dispatcher = EventDispatcher()
        seen = []
        dispatcher.subscribe("Inspector.detached", seen.append)

        await dispatcher.dispatch({"method": "Inspector.detached", "params": "oops"})

        assert seen == [{}]
        assert "detached: unknown" in caplog.text

    async def test_run_consumes_channel(self):
        dispatcher = EventDispatcher()
        channel = MessageChannel()
        seen = []
        dispatcher.subscribe("Runtime.consoleAPICalled", seen.append)

        task = asyncio.create_task(dispatcher.run(channel))
        channel.route({"method": "Runtime.consoleAPICalled", "params": {"type": "log"}})
        channel.route({"method": "Page.loadEventFired"})

        await asyncio.wait_for(dispatcher.wait_for_load(), 1.0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert seen == [{"type": "log"}]
