"""Observer notifications from the engine to the UI.

Usage:
    bus = EventBus()

    def on_status(event):
        print(f"status: {event.data['new']}")

    bus.subscribe("status.changed", on_status)
    bus.emit("status.changed", {"old": "idle", "new": "processing"})
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


@dataclass
class Event:
    """Event data container."""

    name: str
    data: dict[str, Any]
    source: str | None = None


EventListener = Callable[[Event], None]


class EventBus:
    """Synchronous publish/subscribe bus.

    The engine emits after each mutation of the session record; listeners
    run inline, in subscription order, and must not mutate the engine.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventListener]] = {}

    def subscribe(self, event_name: str, handler: EventListener) -> Callable[[], None]:
        """Subscribe to an event and return a callable that unsubscribes.

        Args:
            event_name: Event to listen for (e.g., "status.changed")
            handler: Function called with the ``Event`` when it is emitted
        """
        self._subscribers.setdefault(event_name, []).append(handler)
        LOGGER.debug(f"Subscribed to event: {event_name}")

        def _unsubscribe() -> None:
            self.unsubscribe(event_name, handler)

        return _unsubscribe

    def unsubscribe(self, event_name: str, handler: EventListener) -> None:
        """Unsubscribe from an event.

        Args:
            event_name: Event to stop listening to
            handler: Handler function to remove
        """
        handlers = self._subscribers.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)
            LOGGER.debug(f"Unsubscribed from event: {event_name}")

    def emit(
        self, event_name: str, data: dict[str, Any], source: str | None = None
    ) -> None:
        """Deliver an event to every current subscriber.

        A failing listener is logged and does not stop delivery to the rest.
        """
        event = Event(name=event_name, data=data, source=source)
        for handler in list(self._subscribers.get(event_name, [])):
            try:
                handler(event)
            except Exception as e:
                LOGGER.error(f"Event handler failed for {event_name}: {e}")

