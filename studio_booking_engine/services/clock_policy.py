"""
Time-window rules for cancellation, check-in and no-show marking.

Everything here is a pure function of its arguments. Callers pass ``now``
explicitly so the rest of the engine can be exercised with fixed clocks.
Naive datetimes (as returned by SQLite) are treated as UTC.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ..models.tenant_policy import NoShowBoundary


@dataclass(frozen=True)
class BookingPolicy:
    """Resolved tenant policy values used by the time-window checks."""
    cancellation_policy_hours: int = 4
    checkin_window_minutes: int = 120
    checkin_grace_minutes: int = 30
    no_show_boundary: NoShowBoundary = NoShowBoundary.CLASS_START
    no_show_grace_minutes: int = 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_cancelable_without_penalty(now: datetime, class_start: datetime, policy_hours: int) -> bool:
    """True iff the class starts at least ``policy_hours`` from now."""
    return as_utc(class_start) - as_utc(now) >= timedelta(hours=policy_hours)


def is_within_checkin_window(
    now: datetime,
    class_start: datetime,
    class_end: datetime,
    window_minutes: int,
    grace_minutes: int = 0,
) -> bool:
    """True iff ``now`` lies between the pre-class buffer and class end (plus grace)."""
    now = as_utc(now)
    opens_at = as_utc(class_start) - timedelta(minutes=window_minutes)
    closes_at = as_utc(class_end) + timedelta(minutes=grace_minutes)
    return opens_at <= now <= closes_at


def is_eligible_for_no_show(
    now: datetime,
    class_start: datetime,
    class_end: datetime,
    boundary: NoShowBoundary = NoShowBoundary.CLASS_START,
    grace_minutes: int = 0,
) -> bool:
    """True iff the tenant's no-show boundary (plus grace) has passed."""
    anchor = class_start if boundary == NoShowBoundary.CLASS_START else class_end
    return as_utc(now) >= as_utc(anchor) + timedelta(minutes=grace_minutes)


def has_started(now: datetime, class_start: datetime) -> bool:
    return as_utc(now) >= as_utc(class_start)


class ClockPolicy:
    """The time-window checks bound to one tenant's policy."""

    def __init__(self, policy: BookingPolicy):
        self.policy = policy

    def is_cancelable_without_penalty(self, now: datetime, class_start: datetime) -> bool:
        return is_cancelable_without_penalty(now, class_start, self.policy.cancellation_policy_hours)

    def is_within_checkin_window(self, now: datetime, class_start: datetime, class_end: datetime) -> bool:
        return is_within_checkin_window(
            now,
            class_start,
            class_end,
            self.policy.checkin_window_minutes,
            self.policy.checkin_grace_minutes,
        )

    def is_eligible_for_no_show(self, now: datetime, class_start: datetime, class_end: datetime) -> bool:
        return is_eligible_for_no_show(
            now,
            class_start,
            class_end,
            self.policy.no_show_boundary,
            self.policy.no_show_grace_minutes,
        )

    def has_started(self, now: datetime, class_start: datetime) -> bool:
        return has_started(now, class_start)

    def __repr__(self) -> str:
        return f"<ClockPolicy({self.policy})>"
