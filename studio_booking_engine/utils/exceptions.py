"""
Typed failures for the Studio Booking Engine.
"""

from typing import Any, Dict, Optional, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes surfaced to callers."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Booking engine failures
    CLASS_FULL = "CLASS_FULL"
    WAITLIST_FULL = "WAITLIST_FULL"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    ALREADY_BOOKED = "ALREADY_BOOKED"
    POLICY_VIOLATION = "POLICY_VIOLATION"

    # Storage-level serialization failure, safe to retry
    CONFLICT = "CONFLICT"


class BookingEngineError(Exception):
    """Base exception class for booking engine failures."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        retry_after: Optional[int] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.retry_after = retry_after
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        if self.retry_after:
            result["retry_after"] = self.retry_after

        return result


class ValidationError(BookingEngineError):
    """Exception raised for request validation errors."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, List[str]]] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details={"field_errors": field_errors} if field_errors else None,
            **kwargs
        )
        self.field_errors = field_errors or {}


class NotFoundError(BookingEngineError):
    """Base exception for unknown bookings and class instances."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )


class BookingNotFoundError(NotFoundError):
    """Exception raised when a booking is not found."""

    def __init__(self, booking_id: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} not found",
            resource_type="booking",
            resource_id=booking_id,
            suggestions=["Check the booking ID"],
            **kwargs
        )


class ClassInstanceNotFoundError(NotFoundError):
    """Exception raised when a class instance is not found."""

    def __init__(self, class_instance_id: str, **kwargs):
        super().__init__(
            f"Class instance {class_instance_id} not found",
            resource_type="class_instance",
            resource_id=class_instance_id,
            suggestions=["Check the class ID", "Browse the schedule"],
            **kwargs
        )


class AuthenticationError(BookingEngineError):
    """Exception raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.UNAUTHORIZED,
            suggestions=["Login again"],
            **kwargs
        )


class AuthorizationError(BookingEngineError):
    """Exception raised when the caller lacks a permission."""

    def __init__(self, message: str = "Access denied", required_permission: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.FORBIDDEN,
            details={"required_permission": required_permission} if required_permission else None,
            suggestions=["Contact an administrator for access"],
            **kwargs
        )


class BusinessLogicError(BookingEngineError):
    """Base exception for booking rule violations."""
    pass


class ClassFullError(BusinessLogicError):
    """No confirmed seat left and the waitlist is full or disabled."""

    def __init__(self, class_instance_id: str, capacity: int, waitlist_limit: int, **kwargs):
        super().__init__(
            f"Class {class_instance_id} is full",
            error_code=ErrorCode.CLASS_FULL,
            details={
                "class_instance_id": class_instance_id,
                "capacity": capacity,
                "waitlist_limit": waitlist_limit,
            },
            suggestions=["Choose another class time"],
            **kwargs
        )


class WaitlistFullError(BusinessLogicError):
    """The waitlist has reached its limit."""

    def __init__(self, class_instance_id: str, waitlist_limit: int, **kwargs):
        super().__init__(
            f"Waitlist for class {class_instance_id} is full",
            error_code=ErrorCode.WAITLIST_FULL,
            details={"class_instance_id": class_instance_id, "waitlist_limit": waitlist_limit},
            suggestions=["Choose another class time"],
            **kwargs
        )


class InsufficientBalanceError(BusinessLogicError):
    """The membership cannot cover the cost of the booking."""

    def __init__(self, membership_id: str, required: int, remaining: Optional[int], unit: str, **kwargs):
        super().__init__(
            f"Membership {membership_id} has {remaining} {unit.lower()} remaining, {required} required",
            error_code=ErrorCode.INSUFFICIENT_BALANCE,
            details={
                "membership_id": membership_id,
                "required": required,
                "remaining": remaining,
                "unit": unit,
            },
            suggestions=["Top up your membership"],
            **kwargs
        )


class InvalidTransitionError(BusinessLogicError):
    """Requested status change is not allowed by the booking lifecycle."""

    def __init__(self, booking_id: str, current_state: str, requested_state: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} cannot move from {current_state} to {requested_state}",
            error_code=ErrorCode.INVALID_TRANSITION,
            details={
                "booking_id": booking_id,
                "current_state": current_state,
                "requested_state": requested_state,
            },
            **kwargs
        )


class AlreadyBookedError(BusinessLogicError):
    """The customer already holds an active booking for this class instance."""

    def __init__(self, customer_id: str, class_instance_id: str, booking_id: Optional[str] = None, **kwargs):
        super().__init__(
            f"Customer {customer_id} already has an active booking for class {class_instance_id}",
            error_code=ErrorCode.ALREADY_BOOKED,
            details={
                "customer_id": customer_id,
                "class_instance_id": class_instance_id,
                "booking_id": booking_id,
            },
            suggestions=["View your existing booking"],
            **kwargs
        )


class PolicyViolationError(BusinessLogicError):
    """A time-window or membership policy forbids the operation right now."""

    def __init__(self, message: str, policy: str, **kwargs):
        details = {"policy": policy}
        details.update(kwargs.pop("details", None) or {})
        super().__init__(
            message,
            error_code=ErrorCode.POLICY_VIOLATION,
            details=details,
            **kwargs
        )


class ConflictError(BookingEngineError):
    """Storage-level serialization failure; the whole operation may be retried."""

    def __init__(self, message: str, retry_after: int = 1, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.CONFLICT,
            retry_after=retry_after,
            suggestions=["Please try again"],
            **kwargs
        )
