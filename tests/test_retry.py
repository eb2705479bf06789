import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from studio_booking_engine.services.booking_service import is_active_booking_violation, is_serialization_failure
from studio_booking_engine.utils.exceptions import ConflictError, PolicyViolationError
from studio_booking_engine.utils.retry import RetryConfig, compute_delay, retry_async


class PgError(Exception):
    def __init__(self, message, sqlstate):
        super().__init__(message)
        self.sqlstate = sqlstate


def test_serialization_failures_are_detected():
    assert is_serialization_failure(OperationalError("UPDATE", {}, Exception("database is locked")))
    assert is_serialization_failure(OperationalError("UPDATE", {}, PgError("could not serialize access", "40001")))
    assert is_serialization_failure(OperationalError("UPDATE", {}, PgError("deadlock", "40P01")))
    assert not is_serialization_failure(OperationalError("UPDATE", {}, Exception("disk I/O error")))


def test_active_booking_violation_is_detected():
    sqlite_error = IntegrityError(
        "INSERT", {}, Exception("UNIQUE constraint failed: bookings.customer_id, bookings.class_instance_id")
    )
    pg_error = IntegrityError(
        "INSERT", {}, Exception('duplicate key value violates unique constraint "uq_bookings_active_customer_class"')
    )
    other = IntegrityError("INSERT", {}, Exception("CHECK constraint failed: ck_bookings_consumed_amount"))

    assert is_active_booking_violation(sqlite_error)
    assert is_active_booking_violation(pg_error)
    assert not is_active_booking_violation(other)


def test_delay_is_capped():
    config = RetryConfig(base_delay=0.5, max_delay=1.0, jitter=False)

    assert compute_delay(config, 0) == 0.5
    assert compute_delay(config, 5) == 1.0


@pytest.mark.asyncio
async def test_retries_conflicts_once_then_succeeds():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise ConflictError("lost the race")
        return "ok"

    result = await retry_async(flaky, RetryConfig(max_attempts=2, base_delay=0.001))

    assert result == "ok"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    calls = []

    async def always_conflicts():
        calls.append(1)
        raise ConflictError("still racing")

    with pytest.raises(ConflictError):
        await retry_async(always_conflicts, RetryConfig(max_attempts=2, base_delay=0.001))

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_business_errors_are_not_retried():
    calls = []

    async def rejected():
        calls.append(1)
        raise PolicyViolationError("too late", policy="checkin_window")

    with pytest.raises(PolicyViolationError):
        await retry_async(rejected, RetryConfig(max_attempts=3, base_delay=0.001))

    assert len(calls) == 1
