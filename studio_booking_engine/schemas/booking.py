"""
Pydantic schemas for booking-related API requests and responses.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus
from ..models.membership import BalanceUnit


class BookingSnapshot(BaseModel):
    """Immutable view of a booking as committed."""

    id: UUID
    customer_id: UUID
    class_instance_id: UUID
    status: BookingStatus
    waitlist_position: Optional[int] = None
    booked_at: datetime
    promoted_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    no_show_at: Optional[datetime] = None
    source: Optional[str] = None
    notes: Optional[str] = None
    membership_id: Optional[UUID] = None
    consumed_unit: Optional[BalanceUnit] = None
    consumed_amount: int = 0
    balance_restored_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "frozen": True}


class ClassAvailability(BaseModel):
    """Seat and waitlist occupancy of a class instance."""

    class_instance_id: UUID
    capacity: int
    confirmed_count: int
    available_seats: int
    waitlist_limit: int
    waitlist_count: int
    waitlist_slots_left: int
    is_cancelled: bool

    model_config = {"frozen": True}


class BookingCreateRequest(BaseModel):
    """Schema for creating a new booking."""

    class_instance_id: UUID = Field(..., description="ID of the class instance to book")
    customer_id: Optional[UUID] = Field(
        None,
        description="Customer to book for; staff only, customers always book for themselves"
    )
    source: Optional[str] = Field(None, max_length=50, description="Channel tag, e.g. app, web, front_desk")
    notes: Optional[str] = Field(None, max_length=1000)


class BookingCancelRequest(BaseModel):
    """Schema for cancelling a booking."""

    reason: Optional[str] = Field(None, max_length=500, description="Optional cancellation reason")


class ClassCancelRequest(BaseModel):
    """Schema for cancelling a whole class instance."""

    reason: str = Field(..., min_length=1, max_length=500, description="Reason shown to booked customers")


class BookingOperationResponse(BaseModel):
    """Response for a successful booking operation."""

    booking: BookingSnapshot
    message: str
    promoted_booking: Optional[BookingSnapshot] = None
    balance_restored: int = 0


class ClassCancellationResponse(BaseModel):
    """Response for a successful class cancellation."""

    class_instance_id: UUID
    cancelled_bookings: List[BookingSnapshot]
    message: str = "Class cancelled successfully"


class BookingListResponse(BaseModel):
    """Schema for booking list responses."""

    bookings: List[BookingSnapshot]
    total: int


class BookingTimeframe(str, Enum):
    """Customer booking history split used by the self-service listing."""
    UPCOMING = "upcoming"
    PAST = "past"


class ScheduledBooking(BaseModel):
    """A booking together with the class it is for."""

    booking: BookingSnapshot
    class_name: str
    start_time: datetime
    end_time: datetime
    is_class_cancelled: bool = False


class ScheduledBookingListResponse(BaseModel):
    """Bookings of one customer or one tenant, with their classes."""

    bookings: List[ScheduledBooking]
    total: int
