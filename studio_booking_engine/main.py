"""FastAPI application setup and configuration."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studio_booking_engine.config import settings
from studio_booking_engine.api import api_router
from studio_booking_engine.database import init_database, close_database
from studio_booking_engine.middleware import ErrorHandlerMiddleware, LoggingMiddleware
from studio_booking_engine.utils.logging_config import setup_logging

# Set up logging
setup_logging(
    log_level="DEBUG" if settings.debug else settings.log_level,
    log_file="logs/studio_booking.log" if settings.environment == "production" else None,
    enable_json_logging=settings.enable_json_logging or settings.environment == "production",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Studio Booking Engine")
    await init_database()
    yield
    logger.info("Shutting down Studio Booking Engine")
    await close_database()


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Build the application; tests pass ``use_lifespan=False`` and wire their own database."""
    application = FastAPI(
        title="Studio Booking Engine API",
        description="""
    ## Studio Booking Engine

    Seat allocation, waitlists and membership balances for scheduled classes.

    ### Key Features

    * **Bookings**: Confirmed seats while capacity lasts, an ordered waitlist after that
    * **Promotion**: Freed seats go to the first waitlisted customer who can pay for them
    * **Balances**: Sessions and credits are consumed at confirmation and returned on timely cancellation
    * **Front desk**: Check-in and no-show marking with per-tenant time windows

    ### Authentication

    Every endpoint expects a JWT issued by the platform:
    `Authorization: Bearer <access_token>`. The token carries the caller's
    tenant, role and (for customers) customer id.

    ### Error Handling

    ```json
    {
      "error": {
        "error_code": "CLASS_FULL",
        "message": "Class ... is full",
        "details": {"capacity": 12, "waitlist_limit": 0},
        "suggestions": ["Choose another class time"]
      }
    }
    ```

    `CONFLICT` responses carry a `Retry-After` header and are safe to retry.
    """,
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {
                "name": "bookings",
                "description": "Booking, cancellation, check-in and no-show operations"
            },
            {
                "name": "classes",
                "description": "Class availability, rosters and cancellation"
            },
            {
                "name": "health",
                "description": "System health and monitoring endpoints"
            }
        ],
        lifespan=lifespan if use_lifespan else None,
    )

    # Middleware order: the last added runs first

    # Error handling (innermost, formats exceptions from the routers)
    application.add_middleware(
        ErrorHandlerMiddleware,
        debug=settings.debug
    )

    # Request logging
    if settings.enable_request_logging:
        application.add_middleware(LoggingMiddleware)

    # CORS
    if settings.debug:
        cors_origins = ["*"]
        cors_allow_credentials = False  # Cannot use credentials with wildcard origins
    else:
        cors_origins = settings.cors_origins
        cors_allow_credentials = settings.cors_allow_credentials

    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        expose_headers=settings.cors_expose_headers
    )

    application.include_router(api_router)

    @application.get("/", tags=["health"])
    async def root():
        return {
            "message": "Studio Booking Engine API",
            "version": "1.0.0",
            "docs_url": "/docs",
            "status": "operational"
        }

    @application.get("/health", tags=["health"])
    async def health_check():
        """Basic health check for uptime monitoring."""
        return {"status": "healthy", "service": "studio-booking-engine"}

    return application


app = create_app()
