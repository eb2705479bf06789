"""
JWT token management for API callers.

Users, roles and tenants are managed by the surrounding platform; its tokens
carry everything the booking API needs to authorize a request.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..config import settings
from .permissions import Role


class Principal(BaseModel):
    """The authenticated caller, decoded from the access token."""
    user_id: UUID
    tenant_id: UUID
    role: Role
    customer_id: Optional[UUID] = None

    @property
    def actor(self) -> str:
        """Identifier recorded as ``cancelled_by`` on bookings."""
        return f"{self.role.value.lower()}:{self.user_id}"


def create_access_token(
    principal: Principal,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        principal: The caller the token represents
        expires_delta: Optional custom expiration time

    Returns:
        The encoded JWT token
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {
        "sub": str(principal.user_id),
        "tenant_id": str(principal.tenant_id),
        "role": principal.role.value,
        "exp": expire,
    }
    if principal.customer_id:
        to_encode["customer_id"] = str(principal.customer_id)

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def verify_token(token: str) -> Optional[Principal]:
    """
    Verify and decode a JWT token.

    Args:
        token: The JWT token to verify

    Returns:
        Principal if token is valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )

        if payload.get("sub") is None:
            return None

        return Principal(
            user_id=payload["sub"],
            tenant_id=payload.get("tenant_id"),
            role=payload.get("role"),
            customer_id=payload.get("customer_id"),
        )

    except (JWTError, PydanticValidationError):
        return None
