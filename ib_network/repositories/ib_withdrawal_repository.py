"""
IB withdrawal repository.

Data access layer for IBWithdrawal.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ib_network.models.enums import WithdrawalStatus
from ib_network.models.ib_withdrawal import IBWithdrawal
from ib_network.repositories.base import BaseRepository


class IBWithdrawalRepository(BaseRepository[IBWithdrawal]):
    """IB withdrawal repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize IB withdrawal repository."""
        super().__init__(IBWithdrawal, session)

    async def reserved_amount(self, ib_id: int) -> Decimal:
        """
        Sum of a partner's pending and completed withdrawals.

        Args:
            ib_id: Partner ID

        Returns:
            Amount no longer available in the IB wallet
        """
        stmt = select(
            func.coalesce(func.sum(IBWithdrawal.amount), Decimal("0"))
        ).where(
            IBWithdrawal.ib_id == ib_id,
            IBWithdrawal.status != WithdrawalStatus.REJECTED,
        )
        result = await self.session.execute(stmt)
        return Decimal(result.scalar() or 0)

    async def pending_amount(self, ib_id: int) -> Decimal:
        """Sum of a partner's withdrawals waiting for approval."""
        stmt = select(
            func.coalesce(func.sum(IBWithdrawal.amount), Decimal("0"))
        ).where(
            IBWithdrawal.ib_id == ib_id,
            IBWithdrawal.status == WithdrawalStatus.PENDING,
        )
        result = await self.session.execute(stmt)
        return Decimal(result.scalar() or 0)

    async def total_by_status(self, status: WithdrawalStatus) -> Decimal:
        """Sum of all withdrawals in a status."""
        stmt = select(
            func.coalesce(func.sum(IBWithdrawal.amount), Decimal("0"))
        ).where(IBWithdrawal.status == status)
        result = await self.session.execute(stmt)
        return Decimal(result.scalar() or 0)

    async def get_pending(self) -> list[IBWithdrawal]:
        """Get withdrawals waiting for an admin decision."""
        return await self.find_by(status=WithdrawalStatus.PENDING)
