import asyncio

import pytest

from studio_booking_engine.models import BookingStatus
from studio_booking_engine.utils.exceptions import ClassFullError, InsufficientBalanceError


@pytest.mark.asyncio
async def test_two_customers_race_for_last_seat(service, make_class, make_membership, load_membership):
    class_instance = await make_class(capacity=1, waitlist_limit=5)
    first = await make_membership(sessions=3)
    second = await make_membership(sessions=3)

    results = await asyncio.gather(
        service.create_booking(first.customer_id, class_instance.id),
        service.create_booking(second.customer_id, class_instance.id),
    )

    assert all(result.ok for result in results)
    statuses = sorted(result.booking.status.value for result in results)
    assert statuses == ["CONFIRMED", "WAITLISTED"]
    waitlisted = next(r.booking for r in results if r.booking.status == BookingStatus.WAITLISTED)
    assert waitlisted.waitlist_position == 1

    balances = sorted([
        (await load_membership(first.id)).sessions_remaining,
        (await load_membership(second.id)).sessions_remaining,
    ])
    assert balances == [2, 3]


@pytest.mark.asyncio
async def test_many_bookers_never_overfill(service, make_class, make_membership, list_all):
    class_instance = await make_class(capacity=3, waitlist_limit=2)
    members = [await make_membership() for _ in range(8)]

    results = await asyncio.gather(*(
        service.create_booking(m.customer_id, class_instance.id) for m in members
    ))

    confirmed = await list_all(class_instance.id, BookingStatus.CONFIRMED)
    waitlist = await list_all(class_instance.id, BookingStatus.WAITLISTED)
    assert len(confirmed) == 3
    assert [b.waitlist_position for b in waitlist] == [1, 2]
    assert sum(isinstance(r.error, ClassFullError) for r in results) == 3


@pytest.mark.asyncio
async def test_same_membership_cannot_go_negative(service, make_class, make_membership, load_membership):
    membership = await make_membership(sessions=1)
    classes = [await make_class(capacity=5) for _ in range(3)]

    results = await asyncio.gather(*(
        service.create_booking(membership.customer_id, c.id) for c in classes
    ))

    assert sum(result.ok for result in results) == 1
    assert sum(isinstance(r.error, InsufficientBalanceError) for r in results) == 2
    assert (await load_membership(membership.id)).sessions_remaining == 0


@pytest.mark.asyncio
async def test_concurrent_cancel_and_book_keep_capacity(service, make_class, make_membership, list_all):
    class_instance = await make_class(capacity=1, waitlist_limit=3)
    seated = await make_membership()
    waiting = await make_membership()
    newcomer = await make_membership()
    seat = (await service.create_booking(seated.customer_id, class_instance.id)).booking
    await service.create_booking(waiting.customer_id, class_instance.id)

    await asyncio.gather(
        service.cancel_booking(seat.id),
        service.create_booking(newcomer.customer_id, class_instance.id),
    )

    confirmed = await list_all(class_instance.id, BookingStatus.CONFIRMED)
    waitlist = await list_all(class_instance.id, BookingStatus.WAITLISTED)
    assert len(confirmed) == 1
    assert [b.waitlist_position for b in waitlist] == list(range(1, len(waitlist) + 1))
