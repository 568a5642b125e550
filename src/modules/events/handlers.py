"""EventHandlerRegistry: listeners for negotiation events drained from the outbox."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, dict], Awaitable[None] | None]

# Subscribes a handler to every event type
WILDCARD = "*"


class EventHandlerRegistry:
    """Maps event types to handlers.

    Handlers receive ``(event_type, payload)`` and may be plain or async
    callables. Several handlers can share an event type; ``"*"`` subscribes
    to everything (activity feed, audit mirrors).
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def register(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)
        logger.info("Registered handler %s for event type %s", _name(handler), event_type)

    def get_handlers(self, event_type: str) -> list[EventHandler]:
        return [*self._handlers.get(event_type, []), *self._handlers.get(WILDCARD, [])]

    async def dispatch(self, event_type: str, payload: dict) -> list[dict]:
        """Run every matching handler; one failing handler does not stop the rest.

        Returns one ``{"handler", "status"[, "error"]}`` result per handler.
        """
        results = []
        for handler in self.get_handlers(event_type):
            try:
                outcome = handler(event_type, payload)
                if inspect.isawaitable(outcome):
                    await outcome
                results.append({"handler": _name(handler), "status": "ok"})
            except Exception as exc:
                logger.exception(
                    "Handler %s failed for event type %s", _name(handler), event_type
                )
                results.append({"handler": _name(handler), "status": "error", "error": str(exc)})
        return results

    def clear(self) -> None:
        self._handlers.clear()


def _name(handler: EventHandler) -> str:
    return getattr(handler, "__name__", type(handler).__name__)


registry = EventHandlerRegistry()
