"""
Membership model: the balance side of a customer's plan.

Memberships are created and renewed by billing; the booking engine only reads
their status and moves sessions/credits in and out of the remaining balance.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Enum, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class MembershipStatus(enum.Enum):
    """Enumeration for membership status."""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class BalanceUnit(enum.Enum):
    """Which metered balance a booking was charged against."""
    SESSIONS = "SESSIONS"
    CREDITS = "CREDITS"


class Membership(Base):
    """Customer membership with optional metered balances (null means unlimited)."""

    __tablename__ = "memberships"

    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)

    plan_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[MembershipStatus] = mapped_column(
        Enum(MembershipStatus),
        default=MembershipStatus.ACTIVE,
        nullable=False,
        index=True
    )

    sessions_remaining: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    credits_remaining: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "sessions_remaining IS NULL OR sessions_remaining >= 0",
            name="sessions_non_negative"
        ),
        CheckConstraint(
            "credits_remaining IS NULL OR credits_remaining >= 0",
            name="credits_non_negative"
        ),
    )

    @property
    def is_unlimited(self) -> bool:
        """Subscription-style plans carry no metered balance."""
        return self.sessions_remaining is None and self.credits_remaining is None

    @property
    def metered_unit(self) -> Optional[BalanceUnit]:
        """The balance a booking against this membership consumes, if any."""
        if self.sessions_remaining is not None:
            return BalanceUnit.SESSIONS
        if self.credits_remaining is not None:
            return BalanceUnit.CREDITS
        return None

    def __repr__(self) -> str:
        return (
            f"<Membership(id={self.id}, customer_id={self.customer_id}, status={self.status.value}, "
            f"sessions={self.sessions_remaining}, credits={self.credits_remaining})>"
        )
