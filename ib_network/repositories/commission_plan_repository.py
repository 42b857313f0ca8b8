"""
Commission plan repository.

Data access layer for CommissionPlan.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ib_network.models.commission_plan import CommissionPlan
from ib_network.repositories.base import BaseRepository


class CommissionPlanRepository(BaseRepository[CommissionPlan]):
    """Commission plan repository with default-plan queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission plan repository."""
        super().__init__(CommissionPlan, session)

    async def get_default(self) -> CommissionPlan | None:
        """Get the plan flagged as default."""
        return await self.get_by(is_default=True)

    async def get_by_name(self, name: str) -> CommissionPlan | None:
        """Get plan by unique name."""
        return await self.get_by(name=name)

    async def get_many(self, ids: list[int]) -> dict[int, CommissionPlan]:
        """Load plans by IDs in a single query."""
        if not ids:
            return {}
        stmt = select(CommissionPlan).where(CommissionPlan.id.in_(ids))
        result = await self.session.execute(stmt)
        return {p.id: p for p in result.scalars().all()}

    async def get_ordered(self, active_only: bool = False) -> list[CommissionPlan]:
        """
        Get plans, newest first.

        Args:
            active_only: If True, return only active plans

        Returns:
            List of plans
        """
        stmt = select(CommissionPlan).order_by(CommissionPlan.id.desc())
        if active_only:
            stmt = stmt.where(CommissionPlan.is_active.is_(True))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def clear_default(self, except_id: int | None = None) -> None:
        """
        Unset the default flag on every plan except one.

        Flushed before the new default is set so the partial unique index
        never sees two defaults.

        Args:
            except_id: Plan keeping its flag
        """
        stmt = update(CommissionPlan).where(CommissionPlan.is_default.is_(True))
        if except_id is not None:
            stmt = stmt.where(CommissionPlan.id != except_id)
        await self.session.execute(
            stmt.values(is_default=False).execution_options(
                synchronize_session="fetch"
            )
        )
        await self.session.flush()
