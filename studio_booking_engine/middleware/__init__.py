"""Middleware components for the Studio Booking Engine."""

from .error_handler import ErrorHandlerMiddleware, engine_error_response, status_code_for
from .logging import LoggingMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "LoggingMiddleware",
    "engine_error_response",
    "status_code_for",
]
