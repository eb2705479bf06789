"""
FastAPI routes for creating, cancelling and checking in bookings.
"""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status

from ..middleware.error_handler import engine_error_response
from ..models.booking import BookingStatus
from ..schemas.booking import (
    BookingCancelRequest,
    BookingCreateRequest,
    BookingOperationResponse,
    BookingSnapshot,
    BookingTimeframe,
    ScheduledBookingListResponse,
)
from ..schemas.common import ERROR_RESPONSES, ErrorResponse
from ..services.booking_service import BookingResult, BookingService
from ..utils.auth import Principal
from ..utils.dependencies import (
    authorize_class_access,
    get_booking_service,
    is_customer,
    load_accessible_booking,
    require_permission,
    resolve_customer_id,
)
from ..utils.exceptions import AuthorizationError
from ..utils.permissions import Permission

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


def _operation_response(result: BookingResult, message: str) -> BookingOperationResponse:
    return BookingOperationResponse(
        booking=result.booking,
        message=message,
        promoted_booking=result.promoted,
        balance_restored=result.balance_restored,
    )


@router.post(
    "",
    response_model=BookingOperationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        **ERROR_RESPONSES,
        402: {"model": ErrorResponse, "description": "Membership balance too low"},
        422: {"model": ErrorResponse, "description": "Class cancelled, started, or no active membership"},
    },
)
async def create_booking(
    request: BookingCreateRequest,
    principal: Principal = Depends(require_permission(Permission.BOOKING_CREATE)),
    service: BookingService = Depends(get_booking_service),
):
    """
    Book a class instance.

    Returns a CONFIRMED booking when a seat is free, otherwise a WAITLISTED
    booking with its queue position. Fails with CLASS_FULL when the waitlist
    is full or disabled.
    """
    customer_id = resolve_customer_id(principal, request.customer_id)
    await authorize_class_access(principal, request.class_instance_id, service)

    result = await service.create_booking(
        customer_id,
        request.class_instance_id,
        source=request.source,
        notes=request.notes,
    )
    if not result.ok:
        return engine_error_response(result.error)

    if result.booking.status == BookingStatus.WAITLISTED:
        message = f"Class is full, added to waitlist at position {result.booking.waitlist_position}"
    else:
        message = "Booking confirmed"
    return _operation_response(result, message)


@router.get("", response_model=ScheduledBookingListResponse, responses=ERROR_RESPONSES)
async def list_bookings(
    timeframe: Optional[BookingTimeframe] = Query(
        None,
        description="upcoming or past bookings of one customer; customers default to upcoming"
    ),
    customer_id: Optional[UUID] = Query(None, description="Staff only: restrict to one customer"),
    status: Optional[List[BookingStatus]] = Query(None, description="Staff only: filter by booking status"),
    on_date: Optional[date] = Query(None, description="Staff only: classes starting on this UTC date"),
    principal: Principal = Depends(require_permission(Permission.BOOKING_READ)),
    service: BookingService = Depends(get_booking_service),
):
    """
    List bookings with their classes.

    Customers get their own upcoming bookings (with waitlist positions) or
    their past ones. Staff list the bookings of their tenant.
    """
    if is_customer(principal):
        own_id = principal.customer_id or principal.user_id
        if customer_id is not None and customer_id != own_id:
            raise AuthorizationError("Customers can only list their own bookings")
        bookings = await service.list_customer_bookings(
            own_id, principal.tenant_id, timeframe or BookingTimeframe.UPCOMING
        )
    elif timeframe is not None and customer_id is not None:
        bookings = await service.list_customer_bookings(customer_id, principal.tenant_id, timeframe)
    else:
        bookings = await service.list_tenant_bookings(
            principal.tenant_id,
            customer_id=customer_id,
            statuses=status,
            on_date=on_date,
        )
    return ScheduledBookingListResponse(bookings=bookings, total=len(bookings))


@router.get("/{booking_id}", response_model=BookingSnapshot, responses=ERROR_RESPONSES)
async def get_booking(
    booking_id: UUID,
    principal: Principal = Depends(require_permission(Permission.BOOKING_READ)),
    service: BookingService = Depends(get_booking_service),
):
    return await load_accessible_booking(principal, booking_id, service)


@router.post("/{booking_id}/cancel", response_model=BookingOperationResponse, responses=ERROR_RESPONSES)
async def cancel_booking(
    booking_id: UUID,
    request: Optional[BookingCancelRequest] = Body(None),
    principal: Principal = Depends(require_permission(Permission.BOOKING_CANCEL)),
    service: BookingService = Depends(get_booking_service),
):
    """
    Cancel a booking.

    Late cancellations of confirmed bookings forfeit the consumed balance.
    A freed seat is offered to the first eligible waitlisted customer.
    """
    await load_accessible_booking(principal, booking_id, service)

    result = await service.cancel_booking(
        booking_id,
        actor=principal.actor,
        reason=request.reason if request else None,
    )
    if not result.ok:
        return engine_error_response(result.error)

    message = "Booking cancelled"
    if result.balance_restored:
        message += f", {result.balance_restored} returned to membership"
    return _operation_response(result, message)


@router.post(
    "/{booking_id}/check-in",
    response_model=BookingOperationResponse,
    responses={**ERROR_RESPONSES, 422: {"model": ErrorResponse, "description": "Outside check-in window"}},
)
async def check_in(
    booking_id: UUID,
    principal: Principal = Depends(require_permission(Permission.BOOKING_CHECKIN)),
    service: BookingService = Depends(get_booking_service),
):
    """Check a customer in. Repeating the call returns the same completed booking."""
    await load_accessible_booking(principal, booking_id, service)
    result = await service.check_in(booking_id)
    if not result.ok:
        return engine_error_response(result.error)
    return _operation_response(result, "Checked in")


@router.post(
    "/{booking_id}/no-show",
    response_model=BookingOperationResponse,
    responses={**ERROR_RESPONSES, 422: {"model": ErrorResponse, "description": "Too early to mark no-show"}},
)
async def mark_no_show(
    booking_id: UUID,
    principal: Principal = Depends(require_permission(Permission.BOOKING_UPDATE)),
    service: BookingService = Depends(get_booking_service),
):
    await load_accessible_booking(principal, booking_id, service)
    result = await service.mark_no_show(booking_id)
    if not result.ok:
        return engine_error_response(result.error)
    return _operation_response(result, "Marked as no-show")
