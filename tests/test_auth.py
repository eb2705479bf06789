import uuid
from datetime import timedelta

from jose import jwt

from studio_booking_engine.utils.auth import Principal, create_access_token, verify_token
from studio_booking_engine.utils.permissions import Permission, Role, has_permission, permissions_for


def test_token_round_trip_keeps_claims():
    principal = Principal(
        user_id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        role=Role.CUSTOMER,
        customer_id=uuid.uuid4(),
    )

    decoded = verify_token(create_access_token(principal))

    assert decoded == principal
    assert decoded.actor == f"customer:{principal.user_id}"


def test_expired_and_tampered_tokens_are_rejected():
    principal = Principal(user_id=uuid.uuid4(), tenant_id=uuid.uuid4(), role=Role.MANAGER)

    expired = create_access_token(principal, expires_delta=timedelta(seconds=-1))
    forged = jwt.encode({"sub": str(principal.user_id), "role": "OWNER"}, "not-the-secret", algorithm="HS256")

    assert verify_token(expired) is None
    assert verify_token(forged) is None


def test_customer_permissions():
    assert has_permission(Role.CUSTOMER, Permission.BOOKING_CREATE)
    assert has_permission(Role.CUSTOMER, Permission.BOOKING_CANCEL)
    assert not has_permission(Role.CUSTOMER, Permission.BOOKING_CHECKIN)
    assert not has_permission(Role.CUSTOMER, Permission.SCHEDULE_CANCEL)


def test_staff_permissions():
    assert permissions_for(Role.OWNER) == frozenset(Permission)
    assert has_permission(Role.FRONT_DESK, Permission.BOOKING_CHECKIN)
    assert not has_permission(Role.FRONT_DESK, Permission.BOOKING_UPDATE)
    assert has_permission(Role.COACH, Permission.BOOKING_CHECKIN)
    assert not has_permission(Role.COACH, Permission.BOOKING_CANCEL)
    assert permissions_for(Role.ACCOUNTANT) == frozenset()
