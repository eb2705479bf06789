# tests/conftest.py

import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import select

from studio_booking_engine.cache import RedisCache
from studio_booking_engine.config import get_settings
from studio_booking_engine.database import (
    create_database_engine,
    create_session_factory,
    create_tables,
)
from studio_booking_engine.models import (
    Booking,
    BookingStatus,
    ClassInstance,
    Membership,
    MembershipStatus,
    TenantPolicy,
)
from studio_booking_engine.services.booking_service import BookingService
from studio_booking_engine.services.event_publisher import InMemoryEventPublisher


NOW = datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)
TENANT_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")


class FrozenClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# --- Database Setup ---
@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's commits."""
    test_engine = create_database_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


# --- Engine Components ---
@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def cache():
    # Never initialized: every cache call is a no-op
    return RedisCache()


@pytest.fixture
def service(session_factory, publisher, clock, cache):
    return BookingService(
        session_factory,
        publisher=publisher,
        clock=clock,
        settings=get_settings(),
        cache=cache,
    )


# --- Data Factories ---
@pytest.fixture
def make_class(session_factory):
    async def factory(
        capacity: int = 10,
        waitlist_limit: int = 5,
        starts_in: timedelta = timedelta(days=1),
        duration: timedelta = timedelta(hours=1),
        credit_cost: int = 1,
        tenant_id: uuid.UUID = TENANT_ID,
        name: str = "Morning Flow",
    ) -> ClassInstance:
        start = NOW + starts_in
        class_instance = ClassInstance(
            tenant_id=tenant_id,
            name=name,
            start_time=start,
            end_time=start + duration,
            capacity=capacity,
            waitlist_limit=waitlist_limit,
            credit_cost=credit_cost,
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(class_instance)
        return class_instance

    return factory


@pytest.fixture
def make_membership(session_factory):
    async def factory(
        customer_id: Optional[uuid.UUID] = None,
        sessions: Optional[int] = None,
        credits: Optional[int] = None,
        status: MembershipStatus = MembershipStatus.ACTIVE,
        expires_at: Optional[datetime] = None,
        tenant_id: uuid.UUID = TENANT_ID,
    ) -> Membership:
        membership = Membership(
            customer_id=customer_id or uuid.uuid4(),
            tenant_id=tenant_id,
            plan_name="Class pack",
            status=status,
            sessions_remaining=sessions,
            credits_remaining=credits,
            expires_at=expires_at,
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(membership)
        return membership

    return factory


@pytest.fixture
def make_policy(session_factory):
    async def factory(tenant_id: uuid.UUID = TENANT_ID, **overrides) -> TenantPolicy:
        policy = TenantPolicy(tenant_id=tenant_id, **overrides)
        async with session_factory() as session:
            async with session.begin():
                session.add(policy)
        return policy

    return factory


@pytest.fixture
def load_membership(session_factory):
    async def loader(membership_id: uuid.UUID) -> Membership:
        async with session_factory() as session:
            return await session.get(Membership, membership_id)

    return loader


@pytest.fixture
def load_booking(session_factory):
    async def loader(booking_id: uuid.UUID) -> Booking:
        async with session_factory() as session:
            return await session.get(Booking, booking_id)

    return loader


@pytest.fixture
def list_all(session_factory):
    async def loader(class_instance_id: uuid.UUID, *statuses: BookingStatus) -> List[Booking]:
        stmt = select(Booking).where(Booking.class_instance_id == class_instance_id)
        if statuses:
            stmt = stmt.where(Booking.status.in_(statuses))
        stmt = stmt.order_by(Booking.waitlist_position.asc().nulls_first(), Booking.booked_at.asc())
        async with session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    return loader
