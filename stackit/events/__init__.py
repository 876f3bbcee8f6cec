"""Domain event bus and event types."""

from .event_bus import EventBus
from .event_bus import EventType
from .event_bus import event_bus
from .publisher import drain_pending_events
from .publisher import publish_event
from .publisher import publish_event_fire_and_forget
from .types import AnswerAccepted
from .types import AnswerPosted
from .types import DomainEvent
from .types import VoteCast

__all__ = [
    "AnswerAccepted",
    "AnswerPosted",
    "DomainEvent",
    "EventBus",
    "EventType",
    "VoteCast",
    "drain_pending_events",
    "event_bus",
    "publish_event",
    "publish_event_fire_and_forget",
]
