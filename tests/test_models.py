import uuid

import pytest
from sqlalchemy import select

from studio_booking_engine.models import Booking, ClassInstance, Membership
from studio_booking_engine.services.capacity_allocator import CapacityAllocator

from conftest import TENANT_ID


DIGITS_ONLY = uuid.UUID("22222222-3333-4444-5555-666666666666")


@pytest.mark.asyncio
async def test_numeric_looking_uuids_survive_storage(session_factory, make_class, make_membership):
    class_instance = await make_class(tenant_id=DIGITS_ONLY)
    membership = await make_membership(customer_id=DIGITS_ONLY, tenant_id=DIGITS_ONLY)

    async with session_factory() as session:
        stored_class = await session.get(ClassInstance, class_instance.id)
        stored_membership = (
            await session.execute(select(Membership).where(Membership.customer_id == DIGITS_ONLY))
        ).scalar_one()

    assert stored_class.tenant_id == DIGITS_ONLY
    assert isinstance(stored_class.tenant_id, uuid.UUID)
    assert stored_membership.id == membership.id
    assert stored_membership.tenant_id == DIGITS_ONLY


@pytest.mark.asyncio
async def test_class_lock_reads_back_fixture_tenant(session_factory, make_class):
    class_instance = await make_class()

    async with session_factory() as session:
        async with session.begin():
            locked = await CapacityAllocator(session).lock_class_instance(class_instance.id)

    assert locked.tenant_id == TENANT_ID


@pytest.mark.asyncio
async def test_booking_ids_round_trip(service, session_factory, make_class, make_membership):
    class_instance = await make_class(tenant_id=DIGITS_ONLY)
    membership = await make_membership(customer_id=DIGITS_ONLY, tenant_id=DIGITS_ONLY)

    result = await service.create_booking(membership.customer_id, class_instance.id)

    async with session_factory() as session:
        booking = await session.get(Booking, result.booking.id)

    assert booking.customer_id == DIGITS_ONLY
    assert booking.class_instance_id == class_instance.id
