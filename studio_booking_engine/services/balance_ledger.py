"""
Balance ledger: consumes and restores metered membership balances.

Both directions are single conditional UPDATE statements executed in the
caller's transaction, so a balance can never go negative under concurrent
bookings against the same membership. The amount consumed is written on the
booking and restoration reads it back verbatim.
"""

import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.booking import Booking
from ..models.membership import BalanceUnit, Membership
from ..utils.exceptions import InsufficientBalanceError

logger = logging.getLogger(__name__)


def _balance_column(unit: BalanceUnit):
    if unit == BalanceUnit.SESSIONS:
        return Membership.sessions_remaining
    return Membership.credits_remaining


def cost_for(membership: Membership, credit_cost: int) -> int:
    """Units a booking consumes: one session, or the class credit cost."""
    unit = membership.metered_unit
    if unit is None:
        return 0
    if unit == BalanceUnit.SESSIONS:
        return 1
    return credit_cost


class BalanceLedger:
    """Atomic consumption and exactly-once restoration of membership balances."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def consume(self, membership: Membership, booking: Booking, credit_cost: int) -> int:
        """
        Charge ``booking`` against ``membership``.

        Args:
            membership: The customer's usable membership
            booking: Booking being confirmed; receives the consumption record
            credit_cost: Credits the class costs on credit-metered plans

        Returns:
            Number of units consumed (0 for unlimited plans)

        Raises:
            InsufficientBalanceError: When the remaining balance is below the cost
        """
        unit = membership.metered_unit

        if unit is None:
            booking.membership_id = membership.id
            booking.consumed_unit = None
            booking.consumed_amount = 0
            return 0

        amount = cost_for(membership, credit_cost)
        column = _balance_column(unit)

        result = await self.session.execute(
            update(Membership)
            .where(
                Membership.id == membership.id,
                column.is_not(None),
                column >= amount
            )
            .values({column.key: column - amount})
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(membership)

        if result.rowcount == 0:
            remaining = getattr(membership, column.key)
            raise InsufficientBalanceError(
                str(membership.id),
                required=amount,
                remaining=remaining,
                unit=unit.value
            )

        booking.membership_id = membership.id
        booking.consumed_unit = unit
        booking.consumed_amount = amount
        booking.balance_restored_at = None

        logger.info(
            f"Consumed {amount} {unit.value.lower()} from membership {membership.id} for booking {booking.id}"
        )
        return amount

    async def restore(self, booking: Booking, now: datetime) -> int:
        """
        Give back exactly what ``booking`` consumed to the same membership.

        Returns:
            Units restored; 0 when nothing was consumed or it was already restored
        """
        if not booking.has_refundable_balance:
            if booking.balance_restored_at is not None:
                logger.info(f"Balance for booking {booking.id} already restored, skipping")
            return 0

        column = _balance_column(booking.consumed_unit)
        amount = booking.consumed_amount

        await self.session.execute(
            update(Membership)
            .where(Membership.id == booking.membership_id, column.is_not(None))
            .values({column.key: column + amount})
            .execution_options(synchronize_session=False)
        )
        booking.balance_restored_at = now

        membership = await self.session.get(Membership, booking.membership_id)
        if membership is not None:
            await self.session.refresh(membership)

        logger.info(
            f"Restored {amount} {booking.consumed_unit.value.lower()} to membership "
            f"{booking.membership_id} for booking {booking.id}"
        )
        return amount
