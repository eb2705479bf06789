"""
Tenant policy lookup.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..models.tenant_policy import NoShowBoundary, TenantPolicy
from .clock_policy import BookingPolicy

logger = logging.getLogger(__name__)


def default_policy(settings: Settings) -> BookingPolicy:
    """Policy used for tenants without overrides."""
    return BookingPolicy(
        cancellation_policy_hours=settings.cancellation_policy_hours,
        checkin_window_minutes=settings.checkin_window_minutes,
        checkin_grace_minutes=settings.checkin_grace_minutes,
        no_show_boundary=NoShowBoundary(settings.no_show_boundary),
        no_show_grace_minutes=settings.no_show_grace_minutes,
    )


def merge_policy(base: BookingPolicy, row: Optional[TenantPolicy]) -> BookingPolicy:
    """Overlay the non-null columns of a tenant row on ``base``."""
    if row is None:
        return base

    def pick(value, fallback):
        return fallback if value is None else value

    return BookingPolicy(
        cancellation_policy_hours=pick(row.cancellation_policy_hours, base.cancellation_policy_hours),
        checkin_window_minutes=pick(row.checkin_window_minutes, base.checkin_window_minutes),
        checkin_grace_minutes=pick(row.checkin_grace_minutes, base.checkin_grace_minutes),
        no_show_boundary=pick(row.no_show_boundary, base.no_show_boundary),
        no_show_grace_minutes=pick(row.no_show_grace_minutes, base.no_show_grace_minutes),
    )


class PolicyProvider:
    """Resolves the booking policy for a tenant from TenantPolicy rows and settings."""

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()

    async def get_policy(self, tenant_id: UUID) -> BookingPolicy:
        result = await self.session.execute(
            select(TenantPolicy).where(TenantPolicy.tenant_id == tenant_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            logger.debug(f"No policy overrides for tenant {tenant_id}, using defaults")
        return merge_policy(default_policy(self.settings), row)
