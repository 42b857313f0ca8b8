"""
IB level repository.

Data access layer for IBLevel.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ib_network.models.ib_level import IBLevel
from ib_network.repositories.base import BaseRepository


class IBLevelRepository(BaseRepository[IBLevel]):
    """IB level repository with ladder queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize IB level repository."""
        super().__init__(IBLevel, session)

    async def get_ordered_levels(
        self, active_only: bool = True
    ) -> list[IBLevel]:
        """
        Get levels ordered by order field.

        Args:
            active_only: If True, return only active levels

        Returns:
            List of levels ordered by order, then id
        """
        stmt = select(IBLevel).order_by(IBLevel.order, IBLevel.id)

        if active_only:
            stmt = stmt.where(IBLevel.is_active == True)  # noqa: E712

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_name(self, name: str) -> IBLevel | None:
        """Get level by unique name."""
        return await self.get_by(name=name)

    async def get_active_by_order(
        self, order: int, exclude_id: int | None = None
    ) -> IBLevel | None:
        """
        Get the active level occupying an order slot.

        Args:
            order: Ladder position
            exclude_id: Level to ignore (the one being updated)

        Returns:
            Level or None if the slot is free
        """
        stmt = select(IBLevel).where(
            IBLevel.order == order,
            IBLevel.is_active == True,  # noqa: E712
        )
        if exclude_id is not None:
            stmt = stmt.where(IBLevel.id != exclude_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_many(self, ids: list[int]) -> dict[int, IBLevel]:
        """Load levels by IDs in a single query."""
        if not ids:
            return {}
        stmt = select(IBLevel).where(IBLevel.id.in_(ids))
        result = await self.session.execute(stmt)
        return {level.id: level for level in result.scalars().all()}
