"""
Membership lookup for the customer being booked.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.membership import Membership, MembershipStatus
from .clock_policy import as_utc

logger = logging.getLogger(__name__)


def is_usable(membership: Membership, now: datetime) -> bool:
    """ACTIVE and not past its expiry date."""
    if membership.status != MembershipStatus.ACTIVE:
        return False
    if membership.expires_at is not None and as_utc(membership.expires_at) <= as_utc(now):
        return False
    return True


class MembershipProvider:
    """Reads memberships written by billing."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_membership(
        self,
        customer_id: UUID,
        tenant_id: UUID,
        now: datetime
    ) -> Optional[Membership]:
        """
        Most recently issued usable membership of the customer within the tenant.

        Returns None when the customer has no ACTIVE, unexpired membership.
        """
        result = await self.session.execute(
            select(Membership)
            .where(
                Membership.customer_id == customer_id,
                Membership.tenant_id == tenant_id,
                Membership.status == MembershipStatus.ACTIVE,
            )
            .order_by(Membership.created_at.desc())
        )
        for membership in result.scalars().all():
            if is_usable(membership, now):
                return membership

        logger.info(f"Customer {customer_id} has no usable membership in tenant {tenant_id}")
        return None
