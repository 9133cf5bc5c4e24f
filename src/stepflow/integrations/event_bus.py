"""
In-process event bus
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)


@dataclass
class Event:
    """Event envelope"""
    topic: str
    payload: Any
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    headers: Dict[str, str] = field(default_factory=dict)


class EventBus:
    """Topic based publish/subscribe inside one process"""

    def __init__(self):
        self.subscribers: Dict[str, List[Tuple[Callable, bool]]] = {}
        self._lock = asyncio.Lock()

    async def publish(self, topic: str, payload: Any, headers: Optional[Dict[str, str]] = None) -> int:
        """Publish an event; returns the number of subscribers that accepted it.

        Subscriber errors are logged and do not reach the publisher unless
        ``raise_errors`` was requested at subscription time.
        """
        event = Event(
            topic=topic,
            payload=payload,
            headers=headers or {}
        )

        async with self._lock:
            subscribers = list(self.subscribers.get(topic, []))

        results = await asyncio.gather(
            *(self._notify_subscriber(subscriber, event) for subscriber in subscribers),
            return_exceptions=True
        )

        errors = [result for result in results if isinstance(result, BaseException)]
        if errors:
            raise errors[0]

        logger.debug(f"Published event to topic '{topic}' with {len(subscribers)} subscribers")
        return len(subscribers)

    async def subscribe(self, topic: str, handler: Callable, raise_errors: bool = False):
        """Subscribe to a topic"""
        async with self._lock:
            self.subscribers.setdefault(topic, []).append((handler, raise_errors))

        logger.info(f"Subscribed to topic '{topic}'")

    async def unsubscribe(self, topic: str, handler: Callable):
        """Remove every subscription of ``handler`` to ``topic``"""
        async with self._lock:
            if topic in self.subscribers:
                self.subscribers[topic] = [
                    entry for entry in self.subscribers[topic] if entry[0] is not handler
                ]
                if not self.subscribers[topic]:
                    del self.subscribers[topic]

        logger.info(f"Unsubscribed from topic '{topic}'")

    async def _notify_subscriber(self, subscriber, event: Event):
        handler, raise_errors = subscriber
        try:
            if inspect.iscoroutinefunction(handler):
                await handler(event)
            else:
                handler(event)
        except Exception as e:
            logger.error(f"Error notifying subscriber for topic '{event.topic}': {e}", exc_info=True)
            if raise_errors:
                raise
