"""
Common schemas for API error responses.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Schema for detailed error information."""

    error_code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    suggestions: Optional[List[str]] = Field(None, description="Helpful suggestions for resolving the error")
    retry_after: Optional[int] = Field(None, description="Seconds to wait before retrying")


class ErrorResponse(BaseModel):
    """Schema for API error responses."""

    error: ErrorDetail
    error_id: Optional[str] = None
    timestamp: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error": {
                        "error_code": "CLASS_FULL",
                        "message": "Class 123e4567-e89b-12d3-a456-426614174000 is full",
                        "details": {
                            "class_instance_id": "123e4567-e89b-12d3-a456-426614174000",
                            "capacity": 12,
                            "waitlist_limit": 0
                        },
                        "suggestions": ["Choose another class time"]
                    }
                },
                {
                    "error": {
                        "error_code": "CONFLICT",
                        "message": "Concurrent update, please retry",
                        "retry_after": 1
                    }
                }
            ]
        }
    }


ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Missing or invalid credentials"},
    403: {"model": ErrorResponse, "description": "Permission denied"},
    404: {"model": ErrorResponse, "description": "Booking or class instance not found"},
    409: {"model": ErrorResponse, "description": "Class full, already booked, invalid transition or conflict"},
}
