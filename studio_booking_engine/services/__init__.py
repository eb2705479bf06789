"""Booking engine components for the Studio Booking Engine."""

from .clock_policy import ClockPolicy, BookingPolicy
from .balance_ledger import BalanceLedger
from .capacity_allocator import CapacityAllocator, SeatReservation
from .waitlist_queue import WaitlistQueue
from .booking_state_machine import BookingStateMachine
from .booking_service import BookingService, BookingResult, ClassCancellationResult

__all__ = [
    "ClockPolicy",
    "BookingPolicy",
    "BalanceLedger",
    "CapacityAllocator",
    "SeatReservation",
    "WaitlistQueue",
    "BookingStateMachine",
    "BookingService",
    "BookingResult",
    "ClassCancellationResult",
]
