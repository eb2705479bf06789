"""
Waitlist queue: contiguous FIFO positions per class instance and promotion.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.booking import Booking, BookingStatus
from ..models.class_instance import ClassInstance
from ..utils.exceptions import BusinessLogicError, PolicyViolationError, WaitlistFullError
from ..utils.logging_config import log_business_event
from .balance_ledger import BalanceLedger
from .booking_state_machine import BookingStateMachine
from .capacity_allocator import CapacityAllocator, SeatReservation
from .membership_provider import MembershipProvider

logger = logging.getLogger(__name__)


@dataclass
class PromotionOutcome:
    """Result of promote_next: the promoted booking (if any) and skipped candidates."""
    promoted: Optional[Booking] = None
    skipped: List[Tuple[Booking, BusinessLogicError]] = field(default_factory=list)


class WaitlistQueue:
    """Maintains waitlist positions 1..N in queueing order."""

    def __init__(
        self,
        session: AsyncSession,
        state_machine: Optional[BookingStateMachine] = None,
        ledger: Optional[BalanceLedger] = None,
        memberships: Optional[MembershipProvider] = None,
        allocator: Optional[CapacityAllocator] = None,
    ):
        self.session = session
        self.state_machine = state_machine or BookingStateMachine()
        self.ledger = ledger or BalanceLedger(session)
        self.memberships = memberships or MembershipProvider(session)
        self.allocator = allocator or CapacityAllocator(session)

    async def waitlisted(self, class_instance_id: UUID) -> List[Booking]:
        """WAITLISTED bookings of the class, head of the queue first."""
        result = await self.session.execute(
            select(Booking)
            .where(
                Booking.class_instance_id == class_instance_id,
                Booking.status == BookingStatus.WAITLISTED
            )
            .order_by(Booking.waitlist_position.asc(), Booking.booked_at.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def positions(self, class_instance_id: UUID) -> List[int]:
        """Current waitlist positions in queue order."""
        return [booking.waitlist_position for booking in await self.waitlisted(class_instance_id)]

    async def enqueue(
        self,
        class_instance: ClassInstance,
        customer_id: UUID,
        now: datetime,
        source: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Append a WAITLISTED booking at position max + 1.

        The caller must hold the class instance lock so the position read and
        the insert are not interleaved with another writer.

        Raises:
            WaitlistFullError: When the waitlist is disabled or already at its limit
        """
        row = (
            await self.session.execute(
                select(
                    func.count(Booking.id),
                    func.coalesce(func.max(Booking.waitlist_position), 0)
                ).where(
                    Booking.class_instance_id == class_instance.id,
                    Booking.status == BookingStatus.WAITLISTED
                )
            )
        ).one()
        current_count, current_max = row

        if current_count >= class_instance.waitlist_limit:
            raise WaitlistFullError(str(class_instance.id), class_instance.waitlist_limit)

        booking = self.state_machine.new_waitlisted(
            customer_id,
            class_instance.id,
            current_max + 1,
            now,
            source=source,
            notes=notes,
        )
        self.session.add(booking)
        await self.session.flush()

        logger.info(
            f"Customer {customer_id} waitlisted for class {class_instance.id} at position {booking.waitlist_position}"
        )
        return booking

    async def renumber(self, class_instance_id: UUID) -> int:
        """Reassign positions 1..N preserving queue order. Returns N."""
        queue = await self.waitlisted(class_instance_id)
        changed = 0
        for index, booking in enumerate(queue, start=1):
            if booking.waitlist_position != index:
                booking.waitlist_position = index
                changed += 1
        if changed:
            await self.session.flush()
            logger.debug(f"Renumbered {changed} waitlist entries for class {class_instance_id}")
        return len(queue)

    async def dequeue(
        self,
        booking: Booking,
        now: datetime,
        reason: Optional[str] = None,
        cancelled_by: Optional[str] = None,
    ) -> Booking:
        """Cancel a WAITLISTED booking and close the gap it leaves."""
        self.state_machine.cancel(booking, now, reason=reason, cancelled_by=cancelled_by)
        await self.session.flush()
        await self.renumber(booking.class_instance_id)
        return booking

    async def promote_next(self, class_instance: ClassInstance, now: datetime) -> PromotionOutcome:
        """
        Fill one freed seat from the head of the waitlist.

        Candidates are tried in position order. A candidate whose membership is
        missing, unusable or short on balance is skipped and keeps its place;
        the next one is tried. At most one booking is promoted, and only while
        the class has a free seat.
        """
        outcome = PromotionOutcome()

        if await self.allocator.try_reserve_seat(class_instance) != SeatReservation.RESERVED:
            logger.debug(f"No free seat in class {class_instance.id}, promotion skipped")
            return outcome

        for candidate in await self.waitlisted(class_instance.id):
            try:
                membership = await self.memberships.get_active_membership(
                    candidate.customer_id, class_instance.tenant_id, now
                )
                if membership is None:
                    raise PolicyViolationError(
                        f"Customer {candidate.customer_id} has no active membership",
                        policy="active_membership",
                    )
                await self.ledger.consume(membership, candidate, class_instance.credit_cost)
            except BusinessLogicError as e:
                outcome.skipped.append((candidate, e))
                log_business_event(
                    "waitlist_promotion_skipped",
                    {
                        "booking_id": str(candidate.id),
                        "class_instance_id": str(class_instance.id),
                        "customer_id": str(candidate.customer_id),
                        "waitlist_position": candidate.waitlist_position,
                        "reason": e.error_code.value,
                    },
                    user_id=str(candidate.customer_id),
                )
                continue

            self.state_machine.promote(candidate, now)
            await self.session.flush()
            outcome.promoted = candidate
            break

        await self.renumber(class_instance.id)
        return outcome
