# File: src/parking_ledger/infrastructure/messaging.py
"""
Messaging Infrastructure for the Parking Ledger

Domain events collected by aggregates are published here after their
transaction commits:

1. EventBus - in-process publish/subscribe keyed by event type
2. RedisEventPublisher - forwards events as JSON to a Redis Pub/Sub channel

Handler failures are logged and never undo the committed operation.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
import json
import logging

import redis

from ..domain.models import DomainEvent


ALL_EVENTS = "*"


# ============================================================================
# EVENT HANDLERS
# ============================================================================

class EventHandler(ABC):
    """Abstract base class for event handlers"""

    @abstractmethod
    def handle(self, event: DomainEvent) -> None:
        pass

    def can_handle(self, event: DomainEvent) -> bool:
        return True


class CallbackEventHandler(EventHandler):
    """Wraps a plain callable as an event handler"""

    def __init__(self, callback: Callable[[DomainEvent], None]):
        self.callback = callback

    def handle(self, event: DomainEvent) -> None:
        self.callback(event)


class RecordingEventHandler(EventHandler):
    """Keeps every event it sees; used for auditing and in tests"""

    def __init__(self):
        self.events: List[DomainEvent] = []

    def handle(self, event: DomainEvent) -> None:
        self.events.append(event)

    @property
    def event_types(self) -> List[str]:
        return [event.event_type for event in self.events]


# ============================================================================
# EVENT BUS (In-memory)
# ============================================================================

class EventBus:
    """
    In-memory event bus for intra-process event publishing

    Handlers subscribe to one event type or to ``ALL_EVENTS``.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to events of a specific type"""
        handlers = self._subscribers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            self._logger.debug(f"Subscribed {handler.__class__.__name__} to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            self._logger.debug(f"Unsubscribed {handler.__class__.__name__} from {event_type}")

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to all subscribers"""
        self._logger.info(f"Publishing event: {event.event_type} (ID: {event.event_id})")

        handlers = self._subscribers.get(event.event_type, []) + self._subscribers.get(ALL_EVENTS, [])
        for handler in handlers:
            if not handler.can_handle(event):
                continue
            try:
                handler.handle(event)
                self._logger.debug(f"Event handled by {handler.__class__.__name__}")
            except Exception as e:
                self._logger.error(
                    f"Error handling event {event.event_type} with {handler.__class__.__name__}: {e}"
                )

    def publish_all(self, events: List[DomainEvent]) -> None:
        for event in events:
            self.publish(event)


# ============================================================================
# REDIS PUBLISHER
# ============================================================================

class RedisEventPublisher(EventHandler):
    """Forwards domain events to a Redis Pub/Sub channel as JSON"""

    def __init__(self, redis_client: Any, channel: str):
        self.redis_client = redis_client
        self.channel = channel
        self._logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_url(cls, redis_url: str, channel: str, **kwargs) -> 'RedisEventPublisher':
        return cls(redis.Redis.from_url(redis_url, **kwargs), channel)

    def handle(self, event: DomainEvent) -> None:
        payload = json.dumps(event.to_dict())
        try:
            receivers = self.redis_client.publish(self.channel, payload)
            self._logger.debug(
                f"Published {event.event_type} to {self.channel} ({receivers} receivers)"
            )
        except redis.RedisError as e:
            self._logger.error(f"Error publishing {event.event_type} to Redis: {e}")


def build_event_bus(redis_url: Optional[str] = None, channel: str = "parking_ledger.events") -> EventBus:
    """Create the event bus, wiring Redis fan-out when a URL is configured"""
    bus = EventBus()
    if redis_url:
        bus.subscribe(ALL_EVENTS, RedisEventPublisher.from_url(redis_url, channel))
    return bus
