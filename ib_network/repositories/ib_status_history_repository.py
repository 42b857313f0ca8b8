"""
IB status history repository.

Append-only record of lifecycle transitions.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ib_network.models.ib_status_history import IBStatusHistory
from ib_network.repositories.base import BaseRepository


class IBStatusHistoryRepository(BaseRepository[IBStatusHistory]):
    """Status history repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize status history repository."""
        super().__init__(IBStatusHistory, session)

    async def record(
        self,
        ib_id: int,
        from_status: str | None,
        to_status: str,
        action: str,
        reason: str | None = None,
        actor: str | None = None,
    ) -> IBStatusHistory:
        """Append one transition."""
        entry = IBStatusHistory(
            ib_id=ib_id,
            from_status=from_status,
            to_status=to_status,
            action=action,
            reason=reason,
            actor=actor,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_for_partner(self, ib_id: int) -> list[IBStatusHistory]:
        """Get transitions of a partner, oldest first."""
        stmt = (
            select(IBStatusHistory)
            .where(IBStatusHistory.ib_id == ib_id)
            .order_by(IBStatusHistory.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
