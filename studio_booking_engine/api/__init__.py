"""API endpoints for the Studio Booking Engine."""

from fastapi import APIRouter
from .bookings import router as bookings_router
from .classes import router as classes_router

# Create main API router
api_router = APIRouter(prefix="/api/v1")

api_router.include_router(bookings_router)
api_router.include_router(classes_router)

__all__ = ["api_router"]
