"""
Capacity allocator: seat accounting for one class instance.

The confirmed count is always recomputed from booking rows inside the
caller's transaction, after the class instance row has been locked, so it can
never drift from the bookings that actually hold seats.
"""

import enum
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.booking import Booking, BookingStatus
from ..models.class_instance import ClassInstance
from ..utils.exceptions import ClassInstanceNotFoundError

logger = logging.getLogger(__name__)


class SeatReservation(enum.Enum):
    """Outcome of a seat reservation attempt."""
    RESERVED = "reserved"
    FULL = "full"


@dataclass(frozen=True)
class CapacitySnapshot:
    """Seat and waitlist occupancy of a class instance."""
    capacity: int
    confirmed_count: int
    waitlist_limit: int
    waitlist_count: int

    @property
    def available_seats(self) -> int:
        return max(self.capacity - self.confirmed_count, 0)

    @property
    def waitlist_open(self) -> bool:
        return self.waitlist_limit > 0 and self.waitlist_count < self.waitlist_limit


class CapacityAllocator:
    """Serializes writers per class instance and answers seat questions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_class_instance(self, class_instance_id: UUID) -> ClassInstance:
        """
        Take the per-class write lock and load the class instance.

        The lock is a version bump on the class row. On PostgreSQL it holds a
        row lock until commit; on SQLite it acquires the database write lock.
        Either way concurrent mutations of the same class run one at a time.

        Raises:
            ClassInstanceNotFoundError: When the class instance does not exist
        """
        result = await self.session.execute(
            update(ClassInstance)
            .where(ClassInstance.id == class_instance_id)
            .values(version=ClassInstance.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ClassInstanceNotFoundError(str(class_instance_id))

        class_instance = (
            await self.session.execute(
                select(ClassInstance)
                .where(ClassInstance.id == class_instance_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one()

        logger.debug(f"Locked class instance {class_instance_id} at version {class_instance.version}")
        return class_instance

    async def count_by_status(self, class_instance_id: UUID, status: BookingStatus) -> int:
        result = await self.session.execute(
            select(func.count(Booking.id)).where(
                Booking.class_instance_id == class_instance_id,
                Booking.status == status
            )
        )
        return result.scalar_one()

    async def confirmed_count(self, class_instance_id: UUID) -> int:
        """Number of CONFIRMED bookings for the class."""
        return await self.count_by_status(class_instance_id, BookingStatus.CONFIRMED)

    async def snapshot(self, class_instance: ClassInstance) -> CapacitySnapshot:
        return CapacitySnapshot(
            capacity=class_instance.capacity,
            confirmed_count=await self.confirmed_count(class_instance.id),
            waitlist_limit=class_instance.waitlist_limit,
            waitlist_count=await self.count_by_status(class_instance.id, BookingStatus.WAITLISTED),
        )

    async def try_reserve_seat(self, class_instance: ClassInstance) -> SeatReservation:
        """
        Decide whether one more booking may be CONFIRMED.

        Must be called after lock_class_instance in the same transaction; the
        caller makes the reservation real by flushing a CONFIRMED booking
        before the transaction ends.
        """
        confirmed = await self.confirmed_count(class_instance.id)
        if confirmed < class_instance.capacity:
            logger.debug(
                f"Seat reserved in class {class_instance.id} ({confirmed + 1}/{class_instance.capacity})"
            )
            return SeatReservation.RESERVED
        return SeatReservation.FULL
