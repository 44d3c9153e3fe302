"""
fincore event bus

Notification sink for the categorization and matching engines:
- Match confirmed → invoice.matched / invoice.auto_matched
- Match removed → invoice.unmatched
- Feedback recorded → categorization.feedback_provided

Publishing is best-effort. A failing subscriber never fails the operation
that raised the event.
"""

import asyncio
import inspect
import logging
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import uuid

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    # Matching events
    INVOICE_MATCHED = "invoice.matched"
    INVOICE_AUTO_MATCHED = "invoice.auto_matched"
    INVOICE_UNMATCHED = "invoice.unmatched"

    # Transaction events
    TRANSACTION_CATEGORIZED = "transaction.categorized"
    TRANSACTION_IGNORED = "transaction.ignored"
    TRANSACTION_UNIGNORED = "transaction.unignored"

    # Learning events
    FEEDBACK_PROVIDED = "categorization.feedback_provided"


@dataclass
class Event:
    """An event in the system."""
    type: EventType
    data: Dict[str, Any]
    user_id: Optional[str] = None
    source: str = "finance"
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "type": self.type.value,
            "data": self.data,
            "user_id": self.user_id,
            "source": self.source,
            "timestamp": self.timestamp,
        }


class EventBus:
    """
    Pub/Sub event bus.

    Components subscribe to events they care about. When events fire,
    subscribers are notified immediately.
    """

    _instance: Optional["EventBus"] = None

    def __init__(self):
        self._subscribers: Dict[EventType, List[Callable]] = {}
        self._event_history: List[Event] = []
        self._max_history = 1000

    @classmethod
    def get_instance(cls) -> "EventBus":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def subscribe(self, event_type: EventType, handler: Callable):
        """Subscribe to an event type."""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(handler)
        logger.debug(f"Subscribed {handler.__name__} to {event_type.value}")

    def unsubscribe(self, event_type: EventType, handler: Callable):
        """Unsubscribe from an event type."""
        if event_type in self._subscribers:
            self._subscribers[event_type] = [
                h for h in self._subscribers[event_type] if h != handler
            ]

    async def publish(self, event: Event):
        """Publish an event to every subscriber of its type."""
        logger.info(f"Event: {event.type.value} | user={event.user_id}")

        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history:]

        handlers = self._subscribers.get(event.type, [])
        if not handlers:
            logger.debug(f"No handlers for {event.type.value}")
            return

        tasks = []
        for handler in handlers:
            if inspect.iscoroutinefunction(handler):
                tasks.append(asyncio.create_task(handler(event)))
            else:
                tasks.append(asyncio.create_task(asyncio.to_thread(handler, event)))

        results = await asyncio.gather(*tasks, return_exceptions=True)

        for i, result in enumerate(results):
            if isinstance(result, Exception):
                logger.error(f"Handler {handlers[i].__name__} failed: {result}")

    def get_history(
        self,
        user_id: Optional[str] = None,
        event_type: Optional[EventType] = None,
        limit: int = 100,
    ) -> List[Event]:
        """Get event history."""
        events = self._event_history

        if user_id:
            events = [e for e in events if e.user_id == user_id]

        if event_type:
            events = [e for e in events if e.type == event_type]

        return events[-limit:]


def get_event_bus() -> EventBus:
    return EventBus.get_instance()


async def publish_quietly(
    bus: Optional[EventBus],
    event_type: EventType,
    data: Dict[str, Any],
    user_id: Optional[str] = None,
) -> bool:
    """
    Publish without letting a sink failure escape.

    Returns False when publishing raised; the failure is logged.
    """
    if bus is None:
        return True
    try:
        await bus.publish(Event(type=event_type, data=data, user_id=user_id))
        return True
    except Exception as exc:
        logger.warning(f"Publishing {event_type.value} failed: {exc}")
        return False
