"""
Database models for the Studio Booking Engine.
"""

from .base import Base
from .class_instance import ClassInstance
from .membership import Membership, MembershipStatus, BalanceUnit
from .booking import (
    Booking,
    BookingStatus,
    BookingState,
    Confirmed,
    Waitlisted,
    Cancelled,
    NoShow,
    Completed,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
)
from .tenant_policy import TenantPolicy, NoShowBoundary

__all__ = [
    "Base",
    "ClassInstance",
    "Membership",
    "MembershipStatus",
    "BalanceUnit",
    "Booking",
    "BookingStatus",
    "BookingState",
    "Confirmed",
    "Waitlisted",
    "Cancelled",
    "NoShow",
    "Completed",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "TenantPolicy",
    "NoShowBoundary",
]
