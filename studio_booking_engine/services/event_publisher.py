"""
Domain events emitted after a booking operation commits.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from ..utils.logging_config import log_business_event

logger = logging.getLogger(__name__)


BOOKING_CREATED = "booking.created"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_CHECKED_IN = "booking.checked_in"
BOOKING_NO_SHOW = "booking.no_show"
BOOKING_PROMOTED = "booking.promoted"
CLASS_CANCELLED = "class.cancelled"


@dataclass(frozen=True)
class DomainEvent:
    event_type: str
    class_instance_id: UUID
    occurred_at: datetime
    booking_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    status: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation used as the Celery task payload."""
        return {
            "event_type": self.event_type,
            "booking_id": str(self.booking_id) if self.booking_id else None,
            "class_instance_id": str(self.class_instance_id),
            "customer_id": str(self.customer_id) if self.customer_id else None,
            "status": self.status,
            "occurred_at": self.occurred_at.isoformat(),
            "data": self.data,
        }


class EventPublisher:
    """Publishes committed domain events. Implementations must not raise."""

    async def publish(self, events: List[DomainEvent]) -> None:
        raise NotImplementedError


class LoggingEventPublisher(EventPublisher):
    """Writes events to the business event log only."""

    async def publish(self, events: List[DomainEvent]) -> None:
        for event in events:
            payload = event.to_dict()
            log_business_event(
                payload.pop("event_type"),
                payload,
                user_id=payload.get("customer_id"),
            )


class CeleryEventPublisher(EventPublisher):
    """Enqueues events for the audit and notification workers (fire-and-forget)."""

    async def publish(self, events: List[DomainEvent]) -> None:
        for event in events:
            try:
                from ..tasks.event_tasks import dispatch_domain_event_task
                dispatch_domain_event_task.delay(event.to_dict())
            except Exception as e:
                logger.warning(f"Failed to enqueue domain event {event.event_type} for booking {event.booking_id}: {e}")


class InMemoryEventPublisher(EventPublisher):
    """Keeps published events in a list."""

    def __init__(self):
        self.events: List[DomainEvent] = []

    async def publish(self, events: List[DomainEvent]) -> None:
        self.events.extend(events)

    def of_type(self, event_type: str) -> List[DomainEvent]:
        return [event for event in self.events if event.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


def get_event_publisher(enable_dispatch: bool) -> EventPublisher:
    if enable_dispatch:
        return CeleryEventPublisher()
    return LoggingEventPublisher()
