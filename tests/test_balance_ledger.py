import uuid

import pytest

from studio_booking_engine.models import BalanceUnit, Membership
from studio_booking_engine.services.balance_ledger import BalanceLedger, cost_for
from studio_booking_engine.services.booking_state_machine import BookingStateMachine
from studio_booking_engine.utils.exceptions import ErrorCode, InsufficientBalanceError

from conftest import NOW


def test_cost_for_plan_types():
    assert cost_for(Membership(sessions_remaining=None, credits_remaining=None), 3) == 0
    assert cost_for(Membership(sessions_remaining=5), 3) == 1
    assert cost_for(Membership(credits_remaining=10), 3) == 3


async def _confirmed_booking(session, membership, class_instance):
    booking = BookingStateMachine().new_confirmed(membership.customer_id, class_instance.id, NOW)
    session.add(booking)
    await session.flush()
    return booking


@pytest.mark.asyncio
async def test_consume_sessions(session_factory, make_class, make_membership, load_membership):
    class_instance = await make_class()
    membership = await make_membership(sessions=2)

    async with session_factory() as session:
        async with session.begin():
            member = await session.get(Membership, membership.id)
            booking = await _confirmed_booking(session, member, class_instance)

            consumed = await BalanceLedger(session).consume(member, booking, class_instance.credit_cost)

            assert consumed == 1
            assert booking.membership_id == membership.id
            assert booking.consumed_unit == BalanceUnit.SESSIONS
            assert booking.consumed_amount == 1
            assert member.sessions_remaining == 1

    assert (await load_membership(membership.id)).sessions_remaining == 1


@pytest.mark.asyncio
async def test_consume_credits_uses_class_cost(session_factory, make_class, make_membership, load_membership):
    class_instance = await make_class(credit_cost=3)
    membership = await make_membership(credits=10)

    async with session_factory() as session:
        async with session.begin():
            member = await session.get(Membership, membership.id)
            booking = await _confirmed_booking(session, member, class_instance)
            consumed = await BalanceLedger(session).consume(member, booking, class_instance.credit_cost)

    assert consumed == 3
    assert (await load_membership(membership.id)).credits_remaining == 7


@pytest.mark.asyncio
async def test_consume_unlimited_records_membership_only(session_factory, make_class, make_membership):
    class_instance = await make_class()
    membership = await make_membership()

    async with session_factory() as session:
        async with session.begin():
            member = await session.get(Membership, membership.id)
            booking = await _confirmed_booking(session, member, class_instance)
            consumed = await BalanceLedger(session).consume(member, booking, class_instance.credit_cost)

            assert consumed == 0
            assert booking.membership_id == membership.id
            assert booking.consumed_amount == 0
            assert not booking.has_refundable_balance


@pytest.mark.asyncio
async def test_consume_insufficient_balance_leaves_booking_unmarked(session_factory, make_class, make_membership):
    class_instance = await make_class(credit_cost=5)
    membership = await make_membership(credits=4)

    async with session_factory() as session:
        async with session.begin():
            member = await session.get(Membership, membership.id)
            booking = await _confirmed_booking(session, member, class_instance)

            with pytest.raises(InsufficientBalanceError) as exc_info:
                await BalanceLedger(session).consume(member, booking, class_instance.credit_cost)

            assert exc_info.value.error_code == ErrorCode.INSUFFICIENT_BALANCE
            assert exc_info.value.details["remaining"] == 4
            assert exc_info.value.details["required"] == 5
            assert booking.membership_id is None
            assert member.credits_remaining == 4


@pytest.mark.asyncio
async def test_restore_is_exactly_once(session_factory, make_class, make_membership, load_membership):
    class_instance = await make_class(credit_cost=2)
    membership = await make_membership(credits=6)

    async with session_factory() as session:
        async with session.begin():
            member = await session.get(Membership, membership.id)
            booking = await _confirmed_booking(session, member, class_instance)
            ledger = BalanceLedger(session)
            await ledger.consume(member, booking, class_instance.credit_cost)

            first = await ledger.restore(booking, NOW)
            second = await ledger.restore(booking, NOW)

            assert first == 2
            assert second == 0
            assert booking.balance_restored_at == NOW

    assert (await load_membership(membership.id)).credits_remaining == 6


@pytest.mark.asyncio
async def test_restore_without_consumption_is_noop(session_factory, make_class):
    class_instance = await make_class()

    async with session_factory() as session:
        async with session.begin():
            booking = BookingStateMachine().new_waitlisted(uuid.uuid4(), class_instance.id, 1, NOW)
            session.add(booking)
            await session.flush()

            assert await BalanceLedger(session).restore(booking, NOW) == 0
            assert booking.balance_restored_at is None
