"""
Booking service: the transactional boundary of the booking engine.

Each public operation runs as one unit of work in its own session:

1. lock the class instance (see CapacityAllocator.lock_class_instance)
2. check policy guards
3. mutate seats, waitlist, balances and booking status
4. commit, then publish domain events and invalidate caches

Guard failures never escape as exceptions; they come back as the ``error`` of
a BookingResult / ClassCancellationResult. Storage conflicts are retried once
before being reported as ConflictError.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..cache import CacheInvalidator, CacheKeyBuilder, RedisCache, get_cache
from ..config import Settings, get_settings
from ..models.booking import ACTIVE_STATUSES, TERMINAL_STATUSES, Booking, BookingStatus
from ..models.class_instance import ClassInstance
from ..schemas.booking import BookingSnapshot, BookingTimeframe, ClassAvailability, ScheduledBooking
from ..utils.exceptions import (
    AlreadyBookedError,
    BookingEngineError,
    BookingNotFoundError,
    ClassFullError,
    ClassInstanceNotFoundError,
    ConflictError,
    InvalidTransitionError,
    PolicyViolationError,
    WaitlistFullError,
)
from ..utils.logging_config import log_business_event
from ..utils.retry import RetryConfig, retry_async
from .balance_ledger import BalanceLedger
from .booking_state_machine import BookingStateMachine, ensure_transition
from .capacity_allocator import CapacityAllocator, SeatReservation
from .clock_policy import ClockPolicy, has_started, utc_now
from .event_publisher import (
    BOOKING_CANCELLED,
    BOOKING_CHECKED_IN,
    BOOKING_CREATED,
    BOOKING_NO_SHOW,
    BOOKING_PROMOTED,
    CLASS_CANCELLED,
    DomainEvent,
    EventPublisher,
    get_event_publisher,
)
from .membership_provider import MembershipProvider
from .policy_provider import PolicyProvider
from .waitlist_queue import WaitlistQueue

logger = logging.getLogger(__name__)

ACTIVE_BOOKING_INDEX = "uq_bookings_active_customer_class"
SYSTEM_ACTOR = "system"

_SERIALIZATION_SQLSTATES = {"40001", "40P01"}
_CONFLICT_MARKERS = (
    "database is locked",
    "could not serialize",
    "deadlock detected",
    "lock timeout",
)


@dataclass(frozen=True)
class BookingResult:
    """Outcome of a single-booking operation."""
    booking: Optional[BookingSnapshot] = None
    error: Optional[BookingEngineError] = None
    promoted: Optional[BookingSnapshot] = None
    balance_restored: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> BookingSnapshot:
        """Return the booking or raise the typed failure."""
        if self.error is not None:
            raise self.error
        return self.booking


@dataclass(frozen=True)
class ClassCancellationResult:
    """Outcome of cancelling a whole class instance."""
    class_instance_id: UUID
    cancelled: List[BookingSnapshot] = field(default_factory=list)
    error: Optional[BookingEngineError] = None
    already_cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def is_active_booking_violation(exc: IntegrityError) -> bool:
    """True when ``exc`` comes from the one-active-booking-per-customer index."""
    message = str(exc.orig).lower()
    return (
        ACTIVE_BOOKING_INDEX in message
        or "bookings.customer_id, bookings.class_instance_id" in message
    )


def is_serialization_failure(exc: DBAPIError) -> bool:
    """True for lost lock/serialization races that are safe to retry."""
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if sqlstate in _SERIALIZATION_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    return any(marker in message for marker in _CONFLICT_MARKERS)


class UnitOfWork:
    """Engine components bound to one session and the events they produce."""

    def __init__(self, session: AsyncSession, settings: Settings, now: datetime):
        self.session = session
        self.now = now
        self.state_machine = BookingStateMachine()
        self.allocator = CapacityAllocator(session)
        self.ledger = BalanceLedger(session)
        self.memberships = MembershipProvider(session)
        self.policies = PolicyProvider(session, settings)
        self.queue = WaitlistQueue(
            session,
            state_machine=self.state_machine,
            ledger=self.ledger,
            memberships=self.memberships,
            allocator=self.allocator,
        )
        self.events: List[DomainEvent] = []
        self.touched_classes: Set[UUID] = set()

    def emit(self, event_type: str, booking: Booking, **data: Any) -> None:
        self.events.append(DomainEvent(
            event_type=event_type,
            booking_id=booking.id,
            class_instance_id=booking.class_instance_id,
            customer_id=booking.customer_id,
            status=booking.status.value,
            occurred_at=self.now,
            data=data,
        ))

    async def clock_policy(self, class_instance: ClassInstance) -> ClockPolicy:
        return ClockPolicy(await self.policies.get_policy(class_instance.tenant_id))

    async def load_booking(self, booking_id: UUID, refresh: bool = False) -> Booking:
        stmt = select(Booking).where(Booking.id == booking_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        booking = (await self.session.execute(stmt)).scalar_one_or_none()
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return booking

    async def lock_for_booking(self, booking_id: UUID):
        """Lock the class of ``booking_id`` and return (booking, class_instance) re-read under the lock."""
        booking = await self.load_booking(booking_id)
        class_instance = await self.allocator.lock_class_instance(booking.class_instance_id)
        booking = await self.load_booking(booking_id, refresh=True)
        self.touched_classes.add(class_instance.id)
        return booking, class_instance

    async def active_booking(self, customer_id: UUID, class_instance_id: UUID) -> Optional[Booking]:
        result = await self.session.execute(
            select(Booking).where(
                Booking.customer_id == customer_id,
                Booking.class_instance_id == class_instance_id,
                Booking.status.in_(ACTIVE_STATUSES)
            )
        )
        return result.scalars().first()


class BookingService:
    """Orchestrates booking operations under one transaction each."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: Optional[EventPublisher] = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[Settings] = None,
        cache: Optional[RedisCache] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.publisher = publisher or get_event_publisher(self.settings.enable_event_dispatch)
        self.clock = clock
        self.cache = cache or get_cache()
        self.invalidator = CacheInvalidator(self.cache)
        self.retry_config = RetryConfig(
            max_attempts=self.settings.conflict_retry_attempts + 1,
            base_delay=self.settings.conflict_retry_base_delay,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_booking(
        self,
        customer_id: UUID,
        class_instance_id: UUID,
        source: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BookingResult:
        """
        Book a seat, or a waitlist place when the class is full.

        A confirmed seat consumes the customer's membership balance in the same
        transaction; a waitlist place consumes nothing until promotion.

        Failures:
            PolicyViolationError: Class cancelled, already started, or no usable membership
            AlreadyBookedError: Customer already holds an active booking for the class
            ClassFullError: No seat left and the waitlist is full or disabled
            InsufficientBalanceError: Seat available but the balance cannot cover it
        """
        logger.info(f"Creating booking for customer {customer_id}, class {class_instance_id}")

        async def work(uow: UnitOfWork) -> BookingResult:
            class_instance = await uow.allocator.lock_class_instance(class_instance_id)
            uow.touched_classes.add(class_instance.id)

            if class_instance.is_cancelled:
                raise PolicyViolationError(
                    f"Class {class_instance_id} has been cancelled",
                    policy="class_cancelled",
                )
            if has_started(uow.now, class_instance.start_time):
                raise PolicyViolationError(
                    f"Class {class_instance_id} has already started",
                    policy="class_in_past",
                    details={"start_time": class_instance.start_time.isoformat()},
                )

            existing = await uow.active_booking(customer_id, class_instance_id)
            if existing is not None:
                raise AlreadyBookedError(str(customer_id), str(class_instance_id), str(existing.id))

            membership = await uow.memberships.get_active_membership(
                customer_id, class_instance.tenant_id, uow.now
            )
            if membership is None:
                raise PolicyViolationError(
                    f"Customer {customer_id} has no active membership",
                    policy="active_membership",
                )

            if await uow.allocator.try_reserve_seat(class_instance) == SeatReservation.RESERVED:
                booking = uow.state_machine.new_confirmed(
                    customer_id, class_instance_id, uow.now, source=source, notes=notes
                )
                uow.session.add(booking)
                await uow.session.flush()
                await uow.ledger.consume(membership, booking, class_instance.credit_cost)
                await uow.session.flush()
                uow.emit(
                    BOOKING_CREATED,
                    booking,
                    source=source,
                    consumed_amount=booking.consumed_amount,
                )
            else:
                try:
                    booking = await uow.queue.enqueue(
                        class_instance, customer_id, uow.now, source=source, notes=notes
                    )
                except WaitlistFullError:
                    raise ClassFullError(
                        str(class_instance_id),
                        capacity=class_instance.capacity,
                        waitlist_limit=class_instance.waitlist_limit,
                    )
                uow.emit(
                    BOOKING_CREATED,
                    booking,
                    source=source,
                    waitlist_position=booking.waitlist_position,
                )

            return BookingResult(booking=BookingSnapshot.model_validate(booking))

        def on_duplicate() -> BookingEngineError:
            return AlreadyBookedError(str(customer_id), str(class_instance_id))

        return await self._run_booking_operation("create_booking", work, on_duplicate=on_duplicate)

    async def cancel_booking(
        self,
        booking_id: UUID,
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> BookingResult:
        """
        Cancel a confirmed or waitlisted booking.

        A confirmed booking gets its balance back only when cancelled at least
        the tenant's cancellation window before class start. If the class has
        not started, the freed seat is offered to the waitlist in the same
        transaction. A waitlisted booking simply leaves the queue.
        """
        logger.info(f"Cancelling booking {booking_id} (actor={actor})")

        async def work(uow: UnitOfWork) -> BookingResult:
            booking, class_instance = await uow.lock_for_booking(booking_id)
            ensure_transition(booking, BookingStatus.CANCELLED)

            if booking.status == BookingStatus.WAITLISTED:
                position = booking.waitlist_position
                await uow.queue.dequeue(booking, uow.now, reason=reason, cancelled_by=actor)
                uow.emit(BOOKING_CANCELLED, booking, previous_status="WAITLISTED", waitlist_position=position)
                return BookingResult(booking=BookingSnapshot.model_validate(booking))

            policy = await uow.clock_policy(class_instance)
            restored = 0
            late = not policy.is_cancelable_without_penalty(uow.now, class_instance.start_time)
            if not late:
                restored = await uow.ledger.restore(booking, uow.now)

            uow.state_machine.cancel(booking, uow.now, reason=reason, cancelled_by=actor)
            await uow.session.flush()
            uow.emit(
                BOOKING_CANCELLED,
                booking,
                previous_status="CONFIRMED",
                late_cancellation=late,
                balance_restored=restored,
            )

            promoted = None
            if not policy.has_started(uow.now, class_instance.start_time):
                outcome = await uow.queue.promote_next(class_instance, uow.now)
                if outcome.promoted is not None:
                    uow.emit(
                        BOOKING_PROMOTED,
                        outcome.promoted,
                        freed_by=str(booking.id),
                        consumed_amount=outcome.promoted.consumed_amount,
                    )
                    promoted = BookingSnapshot.model_validate(outcome.promoted)

            return BookingResult(
                booking=BookingSnapshot.model_validate(booking),
                promoted=promoted,
                balance_restored=restored,
            )

        return await self._run_booking_operation("cancel_booking", work)

    async def check_in(self, booking_id: UUID) -> BookingResult:
        """
        Check a confirmed booking in (CONFIRMED -> COMPLETED).

        Checking in an already completed booking succeeds and keeps the
        original check-in time.
        """

        async def work(uow: UnitOfWork) -> BookingResult:
            booking, class_instance = await uow.lock_for_booking(booking_id)

            if booking.status == BookingStatus.COMPLETED:
                logger.info(f"Booking {booking_id} already checked in at {booking.checked_in_at}")
                return BookingResult(booking=BookingSnapshot.model_validate(booking))

            ensure_transition(booking, BookingStatus.COMPLETED)

            policy = await uow.clock_policy(class_instance)
            if not policy.is_within_checkin_window(uow.now, class_instance.start_time, class_instance.end_time):
                raise PolicyViolationError(
                    f"Check-in for booking {booking_id} is outside the check-in window",
                    policy="checkin_window",
                    details={
                        "start_time": class_instance.start_time.isoformat(),
                        "end_time": class_instance.end_time.isoformat(),
                        "checkin_window_minutes": policy.policy.checkin_window_minutes,
                    },
                )

            uow.state_machine.complete(booking, uow.now)
            await uow.session.flush()
            uow.emit(BOOKING_CHECKED_IN, booking)
            return BookingResult(booking=BookingSnapshot.model_validate(booking))

        return await self._run_booking_operation("check_in", work)

    async def mark_no_show(self, booking_id: UUID) -> BookingResult:
        """
        Mark a confirmed booking as a no-show. The consumed balance is forfeited.

        Marking an existing no-show again succeeds without changes.
        """

        async def work(uow: UnitOfWork) -> BookingResult:
            booking, class_instance = await uow.lock_for_booking(booking_id)

            if booking.status == BookingStatus.NO_SHOW:
                return BookingResult(booking=BookingSnapshot.model_validate(booking))

            ensure_transition(booking, BookingStatus.NO_SHOW)

            policy = await uow.clock_policy(class_instance)
            if not policy.is_eligible_for_no_show(uow.now, class_instance.start_time, class_instance.end_time):
                raise PolicyViolationError(
                    f"Booking {booking_id} cannot be marked as no-show yet",
                    policy="no_show_window",
                    details={
                        "no_show_boundary": policy.policy.no_show_boundary.value,
                        "no_show_grace_minutes": policy.policy.no_show_grace_minutes,
                    },
                )

            uow.state_machine.mark_no_show(booking, uow.now)
            await uow.session.flush()
            uow.emit(BOOKING_NO_SHOW, booking, consumed_amount=booking.consumed_amount)
            return BookingResult(booking=BookingSnapshot.model_validate(booking))

        return await self._run_booking_operation("mark_no_show", work)

    async def cancel_class_instance(
        self,
        class_instance_id: UUID,
        reason: str,
        actor: Optional[str] = None,
    ) -> ClassCancellationResult:
        """
        Cancel a class and every active booking in it.

        Every consumed balance is restored regardless of the cancellation
        window and nobody is promoted. Cancelling an already cancelled class
        succeeds without changes.
        """
        logger.info(f"Cancelling class instance {class_instance_id}: {reason}")

        async def work(uow: UnitOfWork) -> ClassCancellationResult:
            class_instance = await uow.allocator.lock_class_instance(class_instance_id)
            uow.touched_classes.add(class_instance.id)

            if class_instance.is_cancelled:
                logger.info(f"Class instance {class_instance_id} is already cancelled")
                return ClassCancellationResult(class_instance_id=class_instance_id, already_cancelled=True)

            class_instance.is_cancelled = True
            class_instance.cancelled_at = uow.now
            class_instance.cancel_reason = reason

            result = await uow.session.execute(
                select(Booking)
                .where(
                    Booking.class_instance_id == class_instance_id,
                    Booking.status.in_(ACTIVE_STATUSES)
                )
                .order_by(Booking.booked_at.asc())
                .execution_options(populate_existing=True)
            )
            bookings = list(result.scalars().all())

            system_reason = f"Class cancelled: {reason}"
            cancelled = []
            restored_total = 0
            for booking in bookings:
                previous_status = booking.status.value
                restored = await uow.ledger.restore(booking, uow.now)
                restored_total += restored
                uow.state_machine.cancel(
                    booking, uow.now, reason=system_reason, cancelled_by=actor or SYSTEM_ACTOR
                )
                uow.emit(
                    BOOKING_CANCELLED,
                    booking,
                    previous_status=previous_status,
                    class_cancelled=True,
                    balance_restored=restored,
                )
                cancelled.append(booking)

            await uow.session.flush()

            uow.events.append(DomainEvent(
                event_type=CLASS_CANCELLED,
                class_instance_id=class_instance_id,
                occurred_at=uow.now,
                data={
                    "reason": reason,
                    "cancelled_bookings": len(cancelled),
                    "balance_restored": restored_total,
                },
            ))

            return ClassCancellationResult(
                class_instance_id=class_instance_id,
                cancelled=[BookingSnapshot.model_validate(booking) for booking in cancelled],
            )

        try:
            return await self._execute("cancel_class_instance", work)
        except BookingEngineError as e:
            self._log_failure("cancel_class_instance", e)
            return ClassCancellationResult(class_instance_id=class_instance_id, error=e)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: UUID) -> BookingResult:
        async with self.session_factory() as session:
            booking = await session.get(Booking, booking_id)
        if booking is None:
            return BookingResult(error=BookingNotFoundError(str(booking_id)))
        return BookingResult(booking=BookingSnapshot.model_validate(booking))

    async def get_class_tenant(self, class_instance_id: UUID) -> UUID:
        """
        Tenant owning a class instance.

        Raises:
            ClassInstanceNotFoundError: When the class instance does not exist
        """
        async with self.session_factory() as session:
            tenant_id = await session.scalar(
                select(ClassInstance.tenant_id).where(ClassInstance.id == class_instance_id)
            )
        if tenant_id is None:
            raise ClassInstanceNotFoundError(str(class_instance_id))
        return tenant_id

    async def list_customer_bookings(
        self,
        customer_id: UUID,
        tenant_id: UUID,
        timeframe: BookingTimeframe = BookingTimeframe.UPCOMING,
        limit: int = 50,
    ) -> List[ScheduledBooking]:
        """
        A customer's own bookings within a tenant.

        Upcoming: confirmed or waitlisted bookings for classes that have not
        started, soonest first. Past: everything else, most recent class first.
        """
        now = self.clock()
        stmt = self._scheduled_bookings(tenant_id).where(Booking.customer_id == customer_id)
        if timeframe == BookingTimeframe.UPCOMING:
            stmt = stmt.where(
                ClassInstance.start_time >= now,
                Booking.status.in_(ACTIVE_STATUSES)
            ).order_by(ClassInstance.start_time.asc(), Booking.booked_at.asc())
        else:
            stmt = stmt.where(
                or_(ClassInstance.start_time < now, Booking.status.in_(TERMINAL_STATUSES))
            ).order_by(ClassInstance.start_time.desc(), Booking.booked_at.desc())

        return await self._fetch_scheduled(stmt.limit(limit))

    async def list_tenant_bookings(
        self,
        tenant_id: UUID,
        customer_id: Optional[UUID] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
        on_date: Optional[date] = None,
        limit: int = 100,
    ) -> List[ScheduledBooking]:
        """Staff listing of bookings in a tenant, newest first."""
        stmt = self._scheduled_bookings(tenant_id)
        if customer_id is not None:
            stmt = stmt.where(Booking.customer_id == customer_id)
        if statuses:
            stmt = stmt.where(Booking.status.in_(list(statuses)))
        if on_date is not None:
            day_start = datetime.combine(on_date, time.min, tzinfo=timezone.utc)
            stmt = stmt.where(
                ClassInstance.start_time >= day_start,
                ClassInstance.start_time < day_start + timedelta(days=1)
            )
        stmt = stmt.order_by(Booking.booked_at.desc()).limit(limit)

        return await self._fetch_scheduled(stmt)

    @staticmethod
    def _scheduled_bookings(tenant_id: UUID):
        return (
            select(Booking, ClassInstance)
            .join(ClassInstance, Booking.class_instance_id == ClassInstance.id)
            .where(ClassInstance.tenant_id == tenant_id)
        )

    async def _fetch_scheduled(self, stmt) -> List[ScheduledBooking]:
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [
            ScheduledBooking(
                booking=BookingSnapshot.model_validate(booking),
                class_name=class_instance.name,
                start_time=class_instance.start_time,
                end_time=class_instance.end_time,
                is_class_cancelled=class_instance.is_cancelled,
            )
            for booking, class_instance in rows
        ]

    async def list_class_bookings(
        self,
        class_instance_id: UUID,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[BookingSnapshot]:
        """
        Roster of a class: confirmed and completed first, waitlist in position order.

        Raises:
            ClassInstanceNotFoundError: When the class instance does not exist
        """
        async with self.session_factory() as session:
            if await session.get(ClassInstance, class_instance_id) is None:
                raise ClassInstanceNotFoundError(str(class_instance_id))

            stmt = select(Booking).where(Booking.class_instance_id == class_instance_id)
            if statuses:
                stmt = stmt.where(Booking.status.in_(list(statuses)))
            stmt = stmt.order_by(
                Booking.waitlist_position.asc().nulls_first(),
                Booking.booked_at.asc()
            )
            result = await session.execute(stmt)
            return [BookingSnapshot.model_validate(booking) for booking in result.scalars().all()]

    async def get_availability(self, class_instance_id: UUID) -> ClassAvailability:
        """
        Seat and waitlist occupancy, served from Redis when cached.

        Raises:
            ClassInstanceNotFoundError: When the class instance does not exist
        """
        cache_key = CacheKeyBuilder.class_availability(str(class_instance_id))
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return ClassAvailability.model_validate(cached)

        async with self.session_factory() as session:
            class_instance = await session.get(ClassInstance, class_instance_id)
            if class_instance is None:
                raise ClassInstanceNotFoundError(str(class_instance_id))
            snapshot = await CapacityAllocator(session).snapshot(class_instance)

        availability = ClassAvailability(
            class_instance_id=class_instance.id,
            capacity=snapshot.capacity,
            confirmed_count=snapshot.confirmed_count,
            available_seats=snapshot.available_seats,
            waitlist_limit=snapshot.waitlist_limit,
            waitlist_count=snapshot.waitlist_count,
            waitlist_slots_left=max(snapshot.waitlist_limit - snapshot.waitlist_count, 0),
            is_cancelled=class_instance.is_cancelled,
        )
        await self.cache.set(
            cache_key,
            availability.model_dump(mode="json"),
            ttl=self.settings.availability_cache_ttl_seconds,
        )
        return availability

    # ------------------------------------------------------------------
    # Unit of work plumbing
    # ------------------------------------------------------------------

    async def _run_booking_operation(
        self,
        operation: str,
        work: Callable[[UnitOfWork], Awaitable[BookingResult]],
        on_duplicate: Optional[Callable[[], BookingEngineError]] = None,
    ) -> BookingResult:
        try:
            return await self._execute(operation, work, on_duplicate=on_duplicate)
        except BookingEngineError as e:
            self._log_failure(operation, e)
            return BookingResult(error=e)

    async def _execute(
        self,
        operation: str,
        work: Callable[[UnitOfWork], Awaitable[Any]],
        on_duplicate: Optional[Callable[[], BookingEngineError]] = None,
    ) -> Any:
        """Run ``work`` in a fresh transaction, retrying conflicts, then publish."""

        async def attempt():
            uow = None
            async with self.session_factory() as session:
                try:
                    async with session.begin():
                        uow = UnitOfWork(session, self.settings, self.clock())
                        result = await work(uow)
                except IntegrityError as e:
                    if is_active_booking_violation(e) and on_duplicate is not None:
                        raise on_duplicate() from e
                    if is_serialization_failure(e):
                        raise ConflictError(f"Concurrent update during {operation}, please retry") from e
                    raise
                except DBAPIError as e:
                    if is_serialization_failure(e):
                        raise ConflictError(f"Concurrent update during {operation}, please retry") from e
                    raise
            return result, uow

        result, uow = await retry_async(attempt, self.retry_config)

        await self.publisher.publish(uow.events)
        for class_instance_id in uow.touched_classes:
            await self.invalidator.invalidate_class_caches(str(class_instance_id))

        log_business_event(
            operation,
            self._describe(uow.events),
            user_id=str(uow.events[0].customer_id) if uow.events and uow.events[0].customer_id else None,
        )
        return result

    @staticmethod
    def _describe(events: List[DomainEvent]) -> Dict[str, Any]:
        return {
            "domain_events": [event.event_type for event in events],
            "booking_ids": [str(event.booking_id) for event in events if event.booking_id],
        }

    @staticmethod
    def _log_failure(operation: str, error: BookingEngineError) -> None:
        if isinstance(error, ConflictError):
            logger.warning(f"{operation} gave up after retries: {error.message}")
        elif isinstance(error, InvalidTransitionError):
            logger.warning(f"{operation} rejected: {error.message}")
        else:
            logger.info(f"{operation} rejected with {error.error_code.value}: {error.message}")
