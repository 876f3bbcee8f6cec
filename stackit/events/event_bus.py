"""Event bus implementation for decoupled event handling."""

import logging
from enum import Enum
from typing import Awaitable
from typing import Callable
from typing import Dict
from typing import Set

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Domain event types raised by the question and answer services."""

    ANSWER_POSTED = "answer_posted"
    ANSWER_ACCEPTED = "answer_accepted"
    VOTE_CAST = "vote_cast"


EventHandler = Callable[[object], Awaitable[None]]


class EventBus:
    """Central event bus for publishing and subscribing to domain events."""

    def __init__(self):
        """Initialize an empty event bus."""
        self._subscribers: Dict[EventType, Set[EventHandler]] = {}

    async def publish(self, event) -> None:
        """Deliver *event* to every subscriber of ``event.event_type``.

        A failing subscriber is logged and does not stop delivery to the
        others; nothing is raised back to the publisher.
        """
        event_type = event.event_type
        if event_type not in self._subscribers:
            return

        logger.debug(f"Publishing event {event_type.value}: {event}")

        # Copy so handlers may (un)subscribe while we iterate
        for callback in list(self._subscribers[event_type]):
            try:
                await callback(event)
            except Exception as e:
                logger.error(f"Error in event handler {getattr(callback, '__qualname__', callback)} for {event_type.value}: {e!r}")

    def subscribe(self, event_type: EventType, callback: EventHandler) -> None:
        """Subscribe to an event type.

        Args:
            event_type: The event type to subscribe to
            callback: Async callback function receiving the event object
        """
        if event_type not in self._subscribers:
            self._subscribers[event_type] = set()

        self._subscribers[event_type].add(callback)
        logger.debug(f"Added subscriber for event {event_type.value}")

    def unsubscribe(self, event_type: EventType, callback: EventHandler) -> None:
        """Unsubscribe from an event type.

        Args:
            event_type: The event type to unsubscribe from
            callback: The callback function to remove
        """
        if event_type in self._subscribers:
            self._subscribers[event_type].discard(callback)
            logger.debug(f"Removed subscriber for event {event_type.value}")

            # Clean up empty subscriber sets
            if not self._subscribers[event_type]:
                del self._subscribers[event_type]

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._subscribers.get(event_type, ()))


# Global event bus instance
event_bus = EventBus()
