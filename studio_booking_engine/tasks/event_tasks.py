"""
Celery tasks that hand committed domain events to audit and notification consumers.
"""

import logging
from typing import Any, Dict

from .celery_app import celery_app
from ..utils.logging_config import log_business_event

logger = logging.getLogger(__name__)

# Consumers subscribe by event type; audit receives everything.
EVENT_ROUTES = {
    "booking.created": ("audit", "notification"),
    "booking.cancelled": ("audit", "notification"),
    "booking.promoted": ("audit", "notification"),
    "booking.checked_in": ("audit",),
    "booking.no_show": ("audit",),
    "class.cancelled": ("audit", "notification"),
}


@celery_app.task(bind=True, name="dispatch_domain_event_task", max_retries=3, default_retry_delay=10)
def dispatch_domain_event_task(self, event: Dict[str, Any]):
    """
    Fan a domain event out to its consumers.

    Args:
        event: Serialized DomainEvent (see services.event_publisher.DomainEvent.to_dict)
    """
    event_type = event.get("event_type")
    consumers = EVENT_ROUTES.get(event_type)

    if consumers is None:
        logger.warning(f"Dropping domain event with unknown type {event_type!r}")
        return {"event_type": event_type, "status": "ignored"}

    try:
        for consumer in consumers:
            log_business_event(
                f"{consumer}:{event_type}",
                {
                    "booking_id": event.get("booking_id"),
                    "class_instance_id": event.get("class_instance_id"),
                    "customer_id": event.get("customer_id"),
                    "status": event.get("status"),
                    "occurred_at": event.get("occurred_at"),
                    "data": event.get("data") or {},
                },
                user_id=event.get("customer_id"),
            )
    except Exception as exc:
        logger.error(f"Error dispatching domain event {event_type}: {exc}")
        raise self.retry(exc=exc)

    logger.info(f"Dispatched {event_type} to {', '.join(consumers)}")
    return {"event_type": event_type, "status": "dispatched", "consumers": list(consumers)}
