"""
ClassInstance model: one scheduled occurrence of a class.
"""

import uuid
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .booking import Booking


class ClassInstance(Base):
    """A concrete class occurrence with a fixed start/end, capacity and waitlist limit."""

    __tablename__ = "class_instances"

    # Ownership (tenants and branches are managed elsewhere)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Timing
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Capacity management
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    waitlist_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credit_cost: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Cancellation
    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Bumped by every mutating booking operation; the bump is the row lock
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    bookings: Mapped[List["Booking"]] = relationship(
        "Booking",
        back_populates="class_instance",
        lazy="raise",
    )

    __table_args__ = (
        CheckConstraint("capacity >= 1", name="capacity_positive"),
        CheckConstraint("waitlist_limit >= 0", name="waitlist_limit_non_negative"),
        CheckConstraint("credit_cost >= 1", name="credit_cost_positive"),
        CheckConstraint("end_time > start_time", name="end_after_start"),
        CheckConstraint("version > 0", name="version_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<ClassInstance(id={self.id}, name='{self.name}', start={self.start_time}, "
            f"capacity={self.capacity}, waitlist_limit={self.waitlist_limit}, cancelled={self.is_cancelled})>"
        )
