"""
FastAPI routes for class instance availability, rosters and cancellation.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from ..middleware.error_handler import engine_error_response
from ..models.booking import BookingStatus
from ..schemas.booking import (
    BookingListResponse,
    ClassAvailability,
    ClassCancelRequest,
    ClassCancellationResponse,
)
from ..schemas.common import ERROR_RESPONSES
from ..services.booking_service import BookingService
from ..utils.auth import Principal
from ..utils.dependencies import (
    authorize_class_access,
    get_booking_service,
    is_customer,
    require_permission,
)
from ..utils.exceptions import AuthorizationError
from ..utils.permissions import Permission

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/classes", tags=["classes"])


@router.get("/{class_instance_id}/availability", response_model=ClassAvailability, responses=ERROR_RESPONSES)
async def get_availability(
    class_instance_id: UUID,
    principal: Principal = Depends(require_permission(Permission.BOOKING_READ)),
    service: BookingService = Depends(get_booking_service),
):
    """Seats left and waitlist occupancy for a class instance."""
    await authorize_class_access(principal, class_instance_id, service)
    return await service.get_availability(class_instance_id)


@router.get("/{class_instance_id}/bookings", response_model=BookingListResponse, responses=ERROR_RESPONSES)
async def list_class_bookings(
    class_instance_id: UUID,
    status: Optional[List[BookingStatus]] = Query(None, description="Filter by booking status"),
    principal: Principal = Depends(require_permission(Permission.BOOKING_READ)),
    service: BookingService = Depends(get_booking_service),
):
    """Front-desk roster: seated customers first, then the waitlist in order."""
    if is_customer(principal):
        raise AuthorizationError("Class rosters are only visible to staff")
    await authorize_class_access(principal, class_instance_id, service)

    bookings = await service.list_class_bookings(class_instance_id, statuses=status)
    return BookingListResponse(bookings=bookings, total=len(bookings))


@router.post("/{class_instance_id}/cancel", response_model=ClassCancellationResponse, responses=ERROR_RESPONSES)
async def cancel_class_instance(
    class_instance_id: UUID,
    request: ClassCancelRequest,
    principal: Principal = Depends(require_permission(Permission.SCHEDULE_CANCEL)),
    service: BookingService = Depends(get_booking_service),
):
    """
    Cancel a class instance.

    Every confirmed and waitlisted booking is cancelled and all consumed
    balances are returned in full.
    """
    await authorize_class_access(principal, class_instance_id, service)

    result = await service.cancel_class_instance(class_instance_id, request.reason, actor=principal.actor)
    if not result.ok:
        return engine_error_response(result.error)

    message = "Class was already cancelled" if result.already_cancelled else "Class cancelled successfully"
    logger.info(f"Class {class_instance_id} cancelled by {principal.actor}: {len(result.cancelled)} bookings")
    return ClassCancellationResponse(
        class_instance_id=class_instance_id,
        cancelled_bookings=result.cancelled,
        message=message,
    )
