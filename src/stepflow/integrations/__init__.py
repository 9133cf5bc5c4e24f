"""External collaborators: event bus and incident notification"""

from .event_bus import Event, EventBus
from .notification import (
    NotificationPublisher,
    InMemoryPublisher,
    EventBusPublisher,
    NotifyIncidentStep,
    PublishedMessage
)

__all__ = [
    "Event",
    "EventBus",
    "NotificationPublisher",
    "InMemoryPublisher",
    "EventBusPublisher",
    "NotifyIncidentStep",
    "PublishedMessage"
]
