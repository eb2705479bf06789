import uuid

import pytest

from studio_booking_engine.models import BookingStatus, ClassInstance, Membership
from studio_booking_engine.services.capacity_allocator import CapacityAllocator, SeatReservation
from studio_booking_engine.services.waitlist_queue import WaitlistQueue
from studio_booking_engine.utils.exceptions import ClassInstanceNotFoundError, ErrorCode, WaitlistFullError

from conftest import NOW


async def _fill_waitlist(session, class_instance, count):
    queue = WaitlistQueue(session)
    bookings = []
    for _ in range(count):
        bookings.append(await queue.enqueue(class_instance, uuid.uuid4(), NOW))
    return queue, bookings


@pytest.mark.asyncio
async def test_enqueue_assigns_contiguous_positions(session_factory, make_class):
    class_instance = await make_class(capacity=1, waitlist_limit=3)

    async with session_factory() as session:
        async with session.begin():
            locked = await CapacityAllocator(session).lock_class_instance(class_instance.id)
            queue, bookings = await _fill_waitlist(session, locked, 3)

            assert [b.waitlist_position for b in bookings] == [1, 2, 3]
            assert await queue.positions(class_instance.id) == [1, 2, 3]

            with pytest.raises(WaitlistFullError):
                await queue.enqueue(locked, uuid.uuid4(), NOW)


@pytest.mark.asyncio
async def test_disabled_waitlist_rejects_first_entry(session_factory, make_class):
    class_instance = await make_class(capacity=1, waitlist_limit=0)

    async with session_factory() as session:
        async with session.begin():
            locked = await CapacityAllocator(session).lock_class_instance(class_instance.id)
            with pytest.raises(WaitlistFullError) as exc_info:
                await WaitlistQueue(session).enqueue(locked, uuid.uuid4(), NOW)

    assert exc_info.value.error_code == ErrorCode.WAITLIST_FULL


@pytest.mark.asyncio
async def test_dequeue_from_middle_closes_gap(session_factory, make_class):
    class_instance = await make_class(capacity=1, waitlist_limit=5)

    async with session_factory() as session:
        async with session.begin():
            locked = await CapacityAllocator(session).lock_class_instance(class_instance.id)
            queue, bookings = await _fill_waitlist(session, locked, 4)

            await queue.dequeue(bookings[1], NOW, reason="changed plans")

            assert bookings[1].status == BookingStatus.CANCELLED
            assert bookings[1].waitlist_position is None
            assert await queue.positions(class_instance.id) == [1, 2, 3]
            assert [b.waitlist_position for b in (bookings[0], bookings[2], bookings[3])] == [1, 2, 3]


@pytest.mark.asyncio
async def test_promote_next_skips_customer_without_membership(session_factory, make_class, make_membership):
    class_instance = await make_class(capacity=1, waitlist_limit=5)
    payer = await make_membership(sessions=3)

    async with session_factory() as session:
        async with session.begin():
            locked = await CapacityAllocator(session).lock_class_instance(class_instance.id)
            queue = WaitlistQueue(session)
            no_membership = await queue.enqueue(locked, uuid.uuid4(), NOW)
            paying = await queue.enqueue(locked, payer.customer_id, NOW)

            outcome = await queue.promote_next(locked, NOW)

            assert outcome.promoted is paying
            assert paying.status == BookingStatus.CONFIRMED
            assert paying.consumed_amount == 1
            assert [(b.id, e.details["policy"]) for b, e in outcome.skipped] == [(no_membership.id, "active_membership")]
            assert no_membership.status == BookingStatus.WAITLISTED
            assert no_membership.waitlist_position == 1

            member = await session.get(Membership, payer.id)
            assert member.sessions_remaining == 2


@pytest.mark.asyncio
async def test_promote_next_skips_short_balance(session_factory, make_class, make_membership):
    class_instance = await make_class(capacity=1, waitlist_limit=5, credit_cost=4)
    short = await make_membership(credits=1)

    async with session_factory() as session:
        async with session.begin():
            locked = await CapacityAllocator(session).lock_class_instance(class_instance.id)
            queue = WaitlistQueue(session)
            candidate = await queue.enqueue(locked, short.customer_id, NOW)

            outcome = await queue.promote_next(locked, NOW)

            assert outcome.promoted is None
            assert outcome.skipped[0][1].error_code == ErrorCode.INSUFFICIENT_BALANCE
            assert candidate.status == BookingStatus.WAITLISTED
            assert candidate.membership_id is None


@pytest.mark.asyncio
async def test_promote_next_requires_free_seat(session_factory, make_class, make_membership):
    class_instance = await make_class(capacity=1, waitlist_limit=5)
    seated = await make_membership()
    waiting = await make_membership()

    async with session_factory() as session:
        async with session.begin():
            allocator = CapacityAllocator(session)
            locked = await allocator.lock_class_instance(class_instance.id)
            queue = WaitlistQueue(session, allocator=allocator)

            assert await allocator.try_reserve_seat(locked) == SeatReservation.RESERVED
            seat = queue.state_machine.new_confirmed(seated.customer_id, locked.id, NOW)
            session.add(seat)
            await session.flush()
            assert await allocator.try_reserve_seat(locked) == SeatReservation.FULL

            head = await queue.enqueue(locked, waiting.customer_id, NOW)
            outcome = await queue.promote_next(locked, NOW)

            assert outcome.promoted is None
            assert outcome.skipped == []
            assert head.status == BookingStatus.WAITLISTED

            snapshot = await allocator.snapshot(locked)
            assert snapshot.confirmed_count == 1
            assert snapshot.available_seats == 0
            assert snapshot.waitlist_count == 1
            assert snapshot.waitlist_open


@pytest.mark.asyncio
async def test_lock_unknown_class_instance(session_factory):
    async with session_factory() as session:
        async with session.begin():
            with pytest.raises(ClassInstanceNotFoundError):
                await CapacityAllocator(session).lock_class_instance(uuid.uuid4())


@pytest.mark.asyncio
async def test_lock_bumps_version(session_factory, make_class):
    class_instance = await make_class()

    async with session_factory() as session:
        async with session.begin():
            locked = await CapacityAllocator(session).lock_class_instance(class_instance.id)
            assert locked.version == 2

    async with session_factory() as session:
        assert (await session.get(ClassInstance, class_instance.id)).version == 2
