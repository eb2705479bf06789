"""
Booking model for seats and waitlist entries in a class instance.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TYPE_CHECKING, Union

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .membership import BalanceUnit

if TYPE_CHECKING:
    from .class_instance import ClassInstance
    from .membership import Membership


class BookingStatus(enum.Enum):
    """Enumeration for booking status."""
    CONFIRMED = "CONFIRMED"
    WAITLISTED = "WAITLISTED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    COMPLETED = "COMPLETED"


ACTIVE_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.WAITLISTED)
TERMINAL_STATUSES = (BookingStatus.CANCELLED, BookingStatus.NO_SHOW, BookingStatus.COMPLETED)


@dataclass(frozen=True)
class Confirmed:
    booked_at: Optional[datetime]
    promoted_at: Optional[datetime] = None


@dataclass(frozen=True)
class Waitlisted:
    position: int


@dataclass(frozen=True)
class Cancelled:
    cancelled_at: Optional[datetime]
    reason: Optional[str]
    cancelled_by: Optional[str] = None


@dataclass(frozen=True)
class NoShow:
    marked_at: Optional[datetime]


@dataclass(frozen=True)
class Completed:
    checked_in_at: Optional[datetime]


BookingState = Union[Confirmed, Waitlisted, Cancelled, NoShow, Completed]


_ACTIVE_BOOKING_PREDICATE = text("status IN ('CONFIRMED', 'WAITLISTED')")


class Booking(Base):
    """A customer's seat or waitlist entry for one class instance."""

    __tablename__ = "bookings"

    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)

    class_instance_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("class_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus),
        nullable=False,
        index=True
    )

    # Only set while WAITLISTED; enforced by ck_bookings_waitlist_position_matches_status
    waitlist_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Lifecycle timestamps
    booked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    promoted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    no_show_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Balance consumed at confirmation time, restored verbatim on refund
    membership_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("memberships.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    consumed_unit: Mapped[Optional[BalanceUnit]] = mapped_column(Enum(BalanceUnit), nullable=True)
    consumed_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    balance_restored_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    class_instance: Mapped["ClassInstance"] = relationship("ClassInstance", back_populates="bookings")
    membership: Mapped[Optional["Membership"]] = relationship("Membership", lazy="raise")

    __table_args__ = (
        Index(
            "uq_bookings_active_customer_class",
            "customer_id",
            "class_instance_id",
            unique=True,
            postgresql_where=_ACTIVE_BOOKING_PREDICATE,
            sqlite_where=_ACTIVE_BOOKING_PREDICATE,
        ),
        Index("ix_bookings_class_status_position", "class_instance_id", "status", "waitlist_position"),
        CheckConstraint(
            "(status = 'WAITLISTED' AND waitlist_position IS NOT NULL AND waitlist_position > 0) "
            "OR (status <> 'WAITLISTED' AND waitlist_position IS NULL)",
            name="waitlist_position_matches_status"
        ),
        CheckConstraint("consumed_amount >= 0", name="consumed_amount_non_negative"),
    )

    @property
    def has_refundable_balance(self) -> bool:
        """True when a metered amount was consumed and has not been given back."""
        return (
            self.membership_id is not None
            and self.consumed_unit is not None
            and self.consumed_amount > 0
            and self.balance_restored_at is None
        )

    @property
    def state(self) -> BookingState:
        """The booking as a tagged variant; illegal column combinations raise."""
        if self.status == BookingStatus.CONFIRMED:
            return Confirmed(booked_at=self.booked_at, promoted_at=self.promoted_at)
        if self.status == BookingStatus.WAITLISTED:
            if self.waitlist_position is None:
                raise ValueError(f"Waitlisted booking {self.id} has no position")
            return Waitlisted(position=self.waitlist_position)
        if self.status == BookingStatus.CANCELLED:
            return Cancelled(
                cancelled_at=self.cancelled_at,
                reason=self.cancel_reason,
                cancelled_by=self.cancelled_by,
            )
        if self.status == BookingStatus.NO_SHOW:
            return NoShow(marked_at=self.no_show_at)
        return Completed(checked_in_at=self.checked_in_at)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, customer_id={self.customer_id}, "
            f"class_instance_id={self.class_instance_id}, status={self.status.value}, "
            f"position={self.waitlist_position})>"
        )
