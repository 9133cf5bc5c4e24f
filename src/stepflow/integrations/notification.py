"""
Incident notification: publishers and the step that uses them
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..core.executor import StepExecutor
from ..exceptions import NotificationError
from ..models.execution import ERROR_KEY
from .event_bus import EventBus


logger = logging.getLogger(__name__)


class NotificationPublisher(ABC):
    """Publishes a message with a subject to an external channel"""

    @abstractmethod
    async def publish(self, subject: str, message: str) -> None:
        """Publish, raising NotificationError on failure"""
        pass


@dataclass
class PublishedMessage:
    subject: str
    message: str
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def body(self) -> Any:
        return json.loads(self.message)


class InMemoryPublisher(NotificationPublisher):
    """Records published messages; used by tests and the CLI"""

    def __init__(self):
        self.messages: List[PublishedMessage] = []

    async def publish(self, subject: str, message: str) -> None:
        self.messages.append(PublishedMessage(subject=subject, message=message))


class EventBusPublisher(NotificationPublisher):
    """Publishes incidents on a topic of the in-process event bus.

    The topic is fixed at construction; subscribers that must acknowledge
    delivery should subscribe with ``raise_errors=True``.
    """

    def __init__(self, event_bus: EventBus, topic: str):
        self.event_bus = event_bus
        self.topic = topic

    async def publish(self, subject: str, message: str) -> None:
        try:
            await self.event_bus.publish(
                self.topic,
                {"subject": subject, "message": message},
                headers={"subject": subject}
            )
        except Exception as e:
            raise NotificationError(f"Publishing to '{self.topic}' failed: {e}") from e


class NotifyIncidentStep(StepExecutor):
    """Publishes the payload's error metadata, then returns a confirmation.

    Conventionally the node running this step has no retry rules and ends in a
    succeed state, so a publication failure ends the run instead of looping.
    """

    def __init__(
        self,
        publisher: NotificationPublisher,
        workflow_name: str,
        subject: Optional[str] = None
    ):
        self.publisher = publisher
        self.workflow_name = workflow_name
        self.subject = subject or f"Workflow error - {workflow_name}"

    def build_incident(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "originalInput": payload,
            "errorDetails": payload.get(ERROR_KEY, "Error no especificado"),
            "workflow": self.workflow_name,
        }

    async def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        incident = self.build_incident(payload)
        logger.info(f"Publishing incident for workflow '{self.workflow_name}'")

        await self.publisher.publish(
            self.subject,
            json.dumps(incident, indent=2, default=str)
        )

        confirmation = {
            "status": "Error Notificado",
            "errorHandled": True,
            "timestamp": incident["timestamp"],
        }
        if ERROR_KEY in payload:
            confirmation[ERROR_KEY] = payload[ERROR_KEY]
        return confirmation
