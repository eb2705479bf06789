"""
FastAPI dependencies for authentication, authorization and service wiring.
"""

from typing import Callable, Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..database import get_session_factory
from ..schemas.booking import BookingSnapshot
from ..services.booking_service import BookingService
from ..utils.auth import Principal, verify_token
from ..utils.exceptions import (
    AuthenticationError,
    AuthorizationError,
    BookingEngineError,
    BookingNotFoundError,
    ClassInstanceNotFoundError,
)
from ..utils.logging_config import log_security_event
from ..utils.permissions import Permission, Role, has_permission


# HTTP Bearer token scheme; missing credentials are reported as AuthenticationError
security = HTTPBearer(auto_error=False)


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    Get the current caller from the JWT token.

    Raises:
        AuthenticationError: If the token is missing or invalid
    """
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    principal = verify_token(credentials.credentials)
    if principal is None:
        log_security_event(
            "invalid_token",
            {"path": request.url.path, "client_ip": request.client.host if request.client else None}
        )
        raise AuthenticationError("Could not validate credentials")

    request.state.principal = principal
    return principal


def require_permission(permission: Permission) -> Callable:
    """
    Dependency factory for requiring a permission.

    Returns:
        Dependency that yields the principal when its role grants ``permission``
    """

    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not has_permission(principal.role, permission):
            log_security_event(
                "permission_denied",
                {
                    "user_id": str(principal.user_id),
                    "role": principal.role.value,
                    "required_permission": permission.value,
                }
            )
            raise AuthorizationError(
                f"Role {principal.role.value} lacks {permission.value}",
                required_permission=permission.value
            )
        return principal

    return dependency


def is_customer(principal: Principal) -> bool:
    return principal.role == Role.CUSTOMER


def resolve_customer_id(principal: Principal, requested: Optional[UUID]) -> UUID:
    """
    Customer a booking request acts for.

    Customers always act for themselves; staff must name the customer.
    """
    own_id = principal.customer_id or principal.user_id
    if is_customer(principal):
        if requested is not None and requested != own_id:
            raise AuthorizationError("Customers can only book for themselves")
        return own_id
    if requested is None:
        raise AuthorizationError("Staff bookings must specify customer_id")
    return requested


def ensure_booking_access(principal: Principal, booking: BookingSnapshot) -> None:
    """Customers may only touch their own bookings."""
    if is_customer(principal) and booking.customer_id != (principal.customer_id or principal.user_id):
        raise AuthorizationError("Booking belongs to another customer")


def ensure_tenant_access(
    principal: Principal,
    tenant_id: UUID,
    not_found: BookingEngineError,
) -> None:
    """
    Staff and customers only see their own tenant's records.

    Records of other tenants are reported as ``not_found``.
    """
    if tenant_id != principal.tenant_id:
        log_security_event(
            "cross_tenant_access",
            {
                "user_id": str(principal.user_id),
                "principal_tenant_id": str(principal.tenant_id),
                "resource_tenant_id": str(tenant_id),
                "resource": not_found.details.get("resource_type"),
            }
        )
        raise not_found


async def authorize_class_access(
    principal: Principal,
    class_instance_id: UUID,
    service: BookingService,
) -> None:
    """Raise ClassInstanceNotFoundError unless the class belongs to the caller's tenant."""
    tenant_id = await service.get_class_tenant(class_instance_id)
    ensure_tenant_access(principal, tenant_id, ClassInstanceNotFoundError(str(class_instance_id)))


async def load_accessible_booking(
    principal: Principal,
    booking_id: UUID,
    service: BookingService,
) -> BookingSnapshot:
    """
    Load a booking the caller may act on.

    Raises:
        BookingNotFoundError: Unknown booking, or one in another tenant
        AuthorizationError: A customer asking for someone else's booking
    """
    booking = (await service.get_booking(booking_id)).unwrap()
    tenant_id = await service.get_class_tenant(booking.class_instance_id)
    ensure_tenant_access(principal, tenant_id, BookingNotFoundError(str(booking_id)))
    ensure_booking_access(principal, booking)
    return booking


def get_booking_service() -> BookingService:
    """BookingService bound to the application's session factory."""
    return BookingService(get_session_factory())
