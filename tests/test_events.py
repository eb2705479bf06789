import uuid
from unittest.mock import patch

import pytest

from studio_booking_engine.services.event_publisher import (
    BOOKING_CREATED,
    CeleryEventPublisher,
    DomainEvent,
    InMemoryEventPublisher,
    LoggingEventPublisher,
    get_event_publisher,
)
from studio_booking_engine.tasks.event_tasks import dispatch_domain_event_task

from conftest import NOW


def make_event(event_type: str = BOOKING_CREATED) -> DomainEvent:
    return DomainEvent(
        event_type=event_type,
        class_instance_id=uuid.uuid4(),
        occurred_at=NOW,
        booking_id=uuid.uuid4(),
        customer_id=uuid.uuid4(),
        status="CONFIRMED",
        data={"consumed_amount": 1},
    )


def test_event_payload_is_json_safe():
    event = make_event()

    payload = event.to_dict()

    assert payload["event_type"] == BOOKING_CREATED
    assert payload["booking_id"] == str(event.booking_id)
    assert payload["occurred_at"] == NOW.isoformat()
    assert payload["data"] == {"consumed_amount": 1}


def test_publisher_selection():
    assert isinstance(get_event_publisher(True), CeleryEventPublisher)
    assert isinstance(get_event_publisher(False), LoggingEventPublisher)


@pytest.mark.asyncio
async def test_in_memory_publisher_filters_by_type():
    publisher = InMemoryEventPublisher()

    await publisher.publish([make_event(), make_event("booking.cancelled")])

    assert len(publisher.events) == 2
    assert len(publisher.of_type("booking.cancelled")) == 1


@pytest.mark.asyncio
async def test_celery_publisher_enqueues_payloads():
    event = make_event()

    with patch.object(dispatch_domain_event_task, "delay") as delay:
        await CeleryEventPublisher().publish([event])

    delay.assert_called_once_with(event.to_dict())


@pytest.mark.asyncio
async def test_celery_publisher_survives_broker_outage():
    with patch.object(dispatch_domain_event_task, "delay", side_effect=ConnectionError("broker down")), \
            patch("studio_booking_engine.services.event_publisher.logger") as logger:
        await CeleryEventPublisher().publish([make_event(), make_event()])

    assert logger.warning.call_count == 2


@pytest.mark.asyncio
async def test_logging_publisher_writes_business_events():
    event = make_event()

    with patch("studio_booking_engine.services.event_publisher.log_business_event") as log_event:
        await LoggingEventPublisher().publish([event])

    event_type, details = log_event.call_args.args
    assert event_type == BOOKING_CREATED
    assert details["booking_id"] == str(event.booking_id)
    assert log_event.call_args.kwargs["user_id"] == str(event.customer_id)


def test_dispatch_task_routes_to_consumers():
    result = dispatch_domain_event_task(make_event().to_dict())

    assert result == {
        "event_type": BOOKING_CREATED,
        "status": "dispatched",
        "consumers": ["audit", "notification"],
    }


def test_dispatch_task_ignores_unknown_events():
    result = dispatch_domain_event_task({"event_type": "booking.teleported"})

    assert result["status"] == "ignored"
