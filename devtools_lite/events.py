"""Dispatch of unsolicited CDP events.

The dispatcher outlives individual connections: subscriptions and the
page-ready state survive a reconnect, while run() is started once per
connection against that connection's MessageChannel.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List

from .channel import MessageChannel
from .protocol import INSPECTOR_DETACHED, PAGE_LOAD_EVENT, detach_reason, event_params

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict], Any]


class EventDispatcher:
    """Reacts to known notifications and fans events out to subscribers."""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._load_event = asyncio.Event()
        self.page_loaded: bool = False

    def subscribe(self, event_name: str, callback: EventHandler) -> None:
        """Register a callback for a CDP event.

        Args:
            event_name: CDP event name (e.g., "Console.messageAdded")
            callback: Sync or async function called with the event params

        Note:
            Remember to enable the corresponding CDP domain first.
            Example: await conn.send("Console.enable")

            Inspector.detached is delivered for every reason, including the
            terminal ones that end the session.
        """
        self._handlers.setdefault(event_name, []).append(callback)
        logger.debug(f"Subscribed to event: {event_name}")

    def unsubscribe(self, event_name: str, callback: EventHandler) -> None:
        if event_name in self._handlers:
            try:
                self._handlers[event_name].remove(callback)
                logger.debug(f"Unsubscribed from event: {event_name}")
            except ValueError:
                logger.warning(f"Callback not found for event: {event_name}")

    def handlers_for(self, event_name: str) -> List[EventHandler]:
        return list(self._handlers.get(event_name, []))

    async def wait_for_load(self) -> None:
        """Return once Page.loadEventFired has been observed."""
        await self._load_event.wait()

    def reset_load_state(self) -> None:
        """Forget a previous page load, e.g. before navigating again."""
        self.page_loaded = False
        self._load_event.clear()

    async def run(self, channel: MessageChannel) -> None:
        """Consume events from channel until cancelled."""
        while True:
            frame = await channel.next_event()
            await self.dispatch(frame)

    async def dispatch(self, frame: Dict[str, Any]) -> None:
        """Handle one event frame. Unknown methods are ignored."""
        method = frame.get("method")
        if not isinstance(method, str):
            logger.debug(f"Ignoring frame without method: {sorted(frame)}")
            return

        params = event_params(frame)

        if method == PAGE_LOAD_EVENT:
            self.page_loaded = True
            self._load_event.set()
            logger.debug("Page load event fired")
        elif method == INSPECTOR_DETACHED:
            logger.warning(f"Chrome DevTools detached: {detach_reason(frame)}")

        for handler in self.handlers_for(method):
            try:
                result = handler(params)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # Isolate handler errors
                logger.error(f"Event handler error for {method}: {e}", exc_info=True)
