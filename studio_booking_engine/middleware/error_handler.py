"""
Error handling middleware: turns engine failures into structured HTTP responses.
"""

import logging
import traceback
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.exc import OperationalError, TimeoutError as SQLTimeoutError
from pydantic import ValidationError as PydanticValidationError

from ..utils.exceptions import (
    BookingEngineError,
    ConflictError,
    ErrorCode,
    ValidationError,
)

logger = logging.getLogger(__name__)


STATUS_BY_ERROR_CODE = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.CLASS_FULL: status.HTTP_409_CONFLICT,
    ErrorCode.WAITLIST_FULL: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_BOOKED: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.INSUFFICIENT_BALANCE: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.POLICY_VIOLATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def status_code_for(exc: BookingEngineError) -> int:
    """Map error codes to HTTP status codes."""
    return STATUS_BY_ERROR_CODE.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def engine_error_response(exc: BookingEngineError, error_id: str = None) -> JSONResponse:
    """Render a BookingEngineError as ``{"error": {...}}`` with the mapped status."""
    headers = {}
    if exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    if exc.error_code == ErrorCode.UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=status_code_for(exc),
        content={
            "error": exc.to_dict(),
            "error_id": error_id or str(uuid4()),
            "timestamp": _timestamp(),
        },
        headers=headers
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catches exceptions escaping the routers and formats them."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        error_id = str(uuid4())

        try:
            return await call_next(request)
        except Exception as exc:
            self._log_error(request, exc, error_id)
            return self._handle_exception(exc, error_id)

    def _handle_exception(self, exc: Exception, error_id: str) -> JSONResponse:
        if isinstance(exc, BookingEngineError):
            return engine_error_response(exc, error_id)
        if isinstance(exc, PydanticValidationError):
            return self._handle_validation_error(exc, error_id)
        if isinstance(exc, (OperationalError, SQLTimeoutError)):
            return self._handle_database_error(exc, error_id)
        return self._handle_unexpected_error(exc, error_id)

    def _handle_validation_error(self, exc: PydanticValidationError, error_id: str) -> JSONResponse:
        field_errors = {}
        for error in exc.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            field_errors.setdefault(field_path, []).append(error["msg"])

        return engine_error_response(
            ValidationError("Request validation failed", field_errors=field_errors),
            error_id
        )

    def _handle_database_error(self, exc: Exception, error_id: str) -> JSONResponse:
        error = BookingEngineError(
            "Database temporarily unavailable",
            error_code=ErrorCode.INTERNAL_ERROR,
            details={"error_type": type(exc).__name__},
            retry_after=30
        )
        response = engine_error_response(error, error_id)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return response

    def _handle_unexpected_error(self, exc: Exception, error_id: str) -> JSONResponse:
        error = BookingEngineError(
            "An unexpected error occurred",
            error_code=ErrorCode.INTERNAL_ERROR,
            details={"error_type": type(exc).__name__} if self.debug else None
        )
        response_data = {
            "error": error.to_dict(),
            "error_id": error_id,
            "timestamp": _timestamp()
        }

        if self.debug:
            response_data["debug"] = {
                "exception": str(exc),
                "traceback": traceback.format_exc()
            }

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response_data
        )

    def _log_error(self, request: Request, exc: Exception, error_id: str) -> None:
        request_info = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }

        if isinstance(exc, BookingEngineError):
            extra = {
                "error_id": error_id,
                "error_code": exc.error_code.value,
                "request": request_info,
                "details": exc.details
            }
            if isinstance(exc, ConflictError):
                logger.warning(f"Conflict [{error_id}]: {exc.message}", extra=extra)
            elif status_code_for(exc) < 500:
                logger.warning(f"Client error [{error_id}]: {exc.message}", extra=extra)
            else:
                logger.error(f"Engine error [{error_id}]: {exc.message}", extra=extra)
        else:
            logger.error(
                f"Unexpected error [{error_id}]: {str(exc)}",
                extra={
                    "error_id": error_id,
                    "error_type": type(exc).__name__,
                    "request": request_info,
                    "traceback": traceback.format_exc()
                }
            )
