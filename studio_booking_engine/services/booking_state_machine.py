"""
Booking lifecycle rules.

    CONFIRMED  -> CANCELLED | NO_SHOW | COMPLETED
    WAITLISTED -> CONFIRMED (promotion) | CANCELLED
    CANCELLED, NO_SHOW, COMPLETED are terminal.

Every status change in the engine goes through this module. Time windows and
balance effects are decided by the caller before a transition is applied.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional
from uuid import UUID

from ..models.booking import TERMINAL_STATUSES, Booking, BookingStatus
from ..utils.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
        BookingStatus.COMPLETED,
    }),
    BookingStatus.WAITLISTED: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    }),
    **{status: frozenset() for status in TERMINAL_STATUSES},
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(booking: Booking, target: BookingStatus) -> None:
    """Raise InvalidTransitionError unless ``booking`` may move to ``target``."""
    if not can_transition(booking.status, target):
        raise InvalidTransitionError(str(booking.id), booking.status.value, target.value)


class BookingStateMachine:
    """Applies lifecycle transitions to Booking rows."""

    def new_confirmed(
        self,
        customer_id: UUID,
        class_instance_id: UUID,
        now: datetime,
        source: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        return Booking(
            customer_id=customer_id,
            class_instance_id=class_instance_id,
            status=BookingStatus.CONFIRMED,
            waitlist_position=None,
            booked_at=now,
            source=source,
            notes=notes,
        )

    def new_waitlisted(
        self,
        customer_id: UUID,
        class_instance_id: UUID,
        position: int,
        now: datetime,
        source: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        if position < 1:
            raise ValueError(f"Waitlist position must be positive, got {position}")
        return Booking(
            customer_id=customer_id,
            class_instance_id=class_instance_id,
            status=BookingStatus.WAITLISTED,
            waitlist_position=position,
            booked_at=now,
            source=source,
            notes=notes,
        )

    def promote(self, booking: Booking, now: datetime) -> Booking:
        """WAITLISTED -> CONFIRMED; clears the waitlist position."""
        ensure_transition(booking, BookingStatus.CONFIRMED)
        booking.status = BookingStatus.CONFIRMED
        booking.waitlist_position = None
        booking.promoted_at = now
        logger.info(f"Booking {booking.id} promoted from waitlist")
        return booking

    def cancel(
        self,
        booking: Booking,
        now: datetime,
        reason: Optional[str] = None,
        cancelled_by: Optional[str] = None,
    ) -> Booking:
        """CONFIRMED or WAITLISTED -> CANCELLED."""
        ensure_transition(booking, BookingStatus.CANCELLED)
        booking.status = BookingStatus.CANCELLED
        booking.waitlist_position = None
        booking.cancelled_at = now
        booking.cancel_reason = reason
        booking.cancelled_by = cancelled_by
        logger.info(f"Booking {booking.id} cancelled ({reason or 'no reason given'})")
        return booking

    def complete(self, booking: Booking, now: datetime) -> Booking:
        """CONFIRMED -> COMPLETED (customer checked in)."""
        ensure_transition(booking, BookingStatus.COMPLETED)
        booking.status = BookingStatus.COMPLETED
        booking.checked_in_at = now
        logger.info(f"Booking {booking.id} checked in")
        return booking

    def mark_no_show(self, booking: Booking, now: datetime) -> Booking:
        """CONFIRMED -> NO_SHOW."""
        ensure_transition(booking, BookingStatus.NO_SHOW)
        booking.status = BookingStatus.NO_SHOW
        booking.no_show_at = now
        logger.info(f"Booking {booking.id} marked as no-show")
        return booking
