"""
TenantPolicy model: per-tenant booking policy overrides.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class NoShowBoundary(enum.Enum):
    """Moment from which a confirmed booking may be marked as a no-show."""
    CLASS_START = "class_start"
    CLASS_END = "class_end"


class TenantPolicy(Base):
    """Booking policy for one tenant; null columns fall back to settings defaults."""

    __tablename__ = "tenant_policies"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        unique=True,
        index=True
    )

    cancellation_policy_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    checkin_window_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    checkin_grace_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    no_show_boundary: Mapped[Optional[NoShowBoundary]] = mapped_column(Enum(NoShowBoundary), nullable=True)
    no_show_grace_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "cancellation_policy_hours IS NULL OR cancellation_policy_hours BETWEEN 0 AND 168",
            name="cancellation_hours_range"
        ),
        CheckConstraint(
            "checkin_window_minutes IS NULL OR checkin_window_minutes >= 0",
            name="checkin_window_non_negative"
        ),
    )

    def __repr__(self) -> str:
        return f"<TenantPolicy(tenant_id={self.tenant_id}, cancellation_hours={self.cancellation_policy_hours})>"
