"""
Role to permission mapping.

Authorization is decided here, once, before a request reaches the booking
engine. The engine itself never looks at roles.
"""

import enum
from typing import Dict, FrozenSet


class Role(str, enum.Enum):
    OWNER = "OWNER"
    NETWORK_MANAGER = "NETWORK_MANAGER"
    MANAGER = "MANAGER"
    COACH = "COACH"
    FRONT_DESK = "FRONT_DESK"
    ACCOUNTANT = "ACCOUNTANT"
    READ_ONLY = "READ_ONLY"
    CUSTOMER = "CUSTOMER"


class Permission(str, enum.Enum):
    BOOKING_CREATE = "booking:create"
    BOOKING_READ = "booking:read"
    BOOKING_CANCEL = "booking:cancel"
    BOOKING_CHECKIN = "booking:checkin"
    BOOKING_UPDATE = "booking:update"
    SCHEDULE_CANCEL = "schedule:cancel"


_ALL_BOOKING = frozenset({
    Permission.BOOKING_CREATE,
    Permission.BOOKING_READ,
    Permission.BOOKING_CANCEL,
    Permission.BOOKING_CHECKIN,
    Permission.BOOKING_UPDATE,
})

ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.OWNER: frozenset(Permission),
    Role.NETWORK_MANAGER: _ALL_BOOKING | {Permission.SCHEDULE_CANCEL},
    Role.MANAGER: _ALL_BOOKING | {Permission.SCHEDULE_CANCEL},
    Role.COACH: frozenset({Permission.BOOKING_READ, Permission.BOOKING_CHECKIN}),
    Role.FRONT_DESK: frozenset({
        Permission.BOOKING_CREATE,
        Permission.BOOKING_READ,
        Permission.BOOKING_CANCEL,
        Permission.BOOKING_CHECKIN,
    }),
    Role.ACCOUNTANT: frozenset(),
    Role.READ_ONLY: frozenset({Permission.BOOKING_READ}),
    # Customers act on their own bookings only; enforced by the API dependency
    Role.CUSTOMER: frozenset({
        Permission.BOOKING_CREATE,
        Permission.BOOKING_READ,
        Permission.BOOKING_CANCEL,
    }),
}


def permissions_for(role: Role) -> FrozenSet[Permission]:
    return ROLE_PERMISSIONS.get(role, frozenset())


def has_permission(role: Role, permission: Permission) -> bool:
    return permission in permissions_for(role)
