"""
EA Sync — Event Bus
─────────────────────
The subsystem decides *that* something should be announced; whoever
subscribes decides how it is shown. Handlers may be plain functions or
coroutines. A handler that raises is logged and skipped; it never breaks
the publisher.

Usage:
    bus = EventBus()
    bus.subscribe(PRICE_ALERT, lambda payload: print(payload["message"]))
    await bus.publish(PRICE_ALERT, {...})
"""

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

log = logging.getLogger("ea_sync.events")

INITIALIZED           = "initialized"
WATCHLIST_UPDATED     = "watchlist_updated"
BATCH_UPDATE_COMPLETE = "batch_update_complete"
PRICE_ALERT           = "price_alert"
NOTIFICATION          = "notification"
JOB_FAILED            = "job_failed"

ALL_EVENTS = "*"

Handler = Callable[[dict], Any]


class EventBus:

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns a function that unsubscribes it."""
        self._handlers[event].append(handler)

        def unsubscribe():
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)
        return unsubscribe

    def subscriber_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    async def publish(self, event: str, payload: dict) -> int:
        """Deliver to every subscriber. Returns how many handlers succeeded."""
        delivered = 0
        handlers = list(self._handlers.get(event, [])) + list(self._handlers.get(ALL_EVENTS, []))
        for handler in handlers:
            try:
                result = handler({"event": event, **payload})
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                log.warning(f"Handler for {event} failed: {e}")
        return delivered
