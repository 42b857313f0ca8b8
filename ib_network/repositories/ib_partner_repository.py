"""
IB partner repository.

Data access layer for IBPartner, including the recursive upline and
downline walks of the referral tree.
"""

from sqlalchemy import Integer, func, literal, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ib_network.config.constants import MAX_COMMISSION_DEPTH
from ib_network.models.ib_partner import IBPartner
from ib_network.repositories.base import BaseRepository


class IBPartnerRepository(BaseRepository[IBPartner]):
    """IB partner repository with tree queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize IB partner repository."""
        super().__init__(IBPartner, session)

    async def get_by_user_id(
        self, user_id: int, fresh: bool = False
    ) -> IBPartner | None:
        """
        Get partner record of a platform user.

        Args:
            user_id: Platform user ID
            fresh: Bypass the identity map (needed before version checks)
        """
        stmt = select(IBPartner).where(IBPartner.user_id == user_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_referral_code(self, code: str) -> IBPartner | None:
        """Get partner by issued referral code."""
        return await self.get_by(referral_code=code)

    async def get_many(self, ids: list[int]) -> dict[int, IBPartner]:
        """
        Load partners by IDs in a single query.

        Args:
            ids: Partner IDs

        Returns:
            Dict mapping id to partner (missing ids are absent)
        """
        if not ids:
            return {}
        stmt = (
            select(IBPartner)
            .where(IBPartner.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return {p.id: p for p in result.scalars().all()}

    async def get_upline_ids(
        self, ib_id: int, depth: int = MAX_COMMISSION_DEPTH
    ) -> list[tuple[int, int]]:
        """
        Get ancestors of a partner (recursive CTE).

        Dangling parent references end the walk because the join finds
        no row for them.

        Args:
            ib_id: Starting partner ID
            depth: Maximum hops to walk

        Returns:
            List of (distance, ancestor_id), nearest first, distance >= 1
        """
        upline = (
            select(
                IBPartner.id.label("id"),
                IBPartner.parent_ib_id.label("parent_ib_id"),
                literal(0, type_=Integer).label("depth"),
            )
            .where(IBPartner.id == ib_id)
            .cte("upline", recursive=True)
        )
        parent = aliased(IBPartner)
        upline = upline.union_all(
            select(
                parent.id,
                parent.parent_ib_id,
                (upline.c.depth + 1).label("depth"),
            ).where(
                parent.id == upline.c.parent_ib_id,
                upline.c.depth < depth,
            )
        )

        stmt = (
            select(upline.c.depth, upline.c.id)
            .where(upline.c.depth > 0)
            .order_by(upline.c.depth)
        )
        result = await self.session.execute(stmt)
        return [(row.depth, row.id) for row in result.all()]

    async def get_downline(
        self, ib_id: int, depth: int = MAX_COMMISSION_DEPTH
    ) -> list[tuple[int, IBPartner]]:
        """
        Get partners below a partner (recursive CTE).

        Args:
            ib_id: Root partner ID
            depth: Maximum hops to walk down

        Returns:
            List of (distance, partner) ordered by distance then id
        """
        downline = (
            select(
                IBPartner.id.label("id"),
                literal(0, type_=Integer).label("depth"),
            )
            .where(IBPartner.id == ib_id)
            .cte("downline", recursive=True)
        )
        child = aliased(IBPartner)
        downline = downline.union_all(
            select(
                child.id,
                (downline.c.depth + 1).label("depth"),
            ).where(
                child.parent_ib_id == downline.c.id,
                downline.c.depth < depth,
            )
        )

        stmt = (
            select(downline.c.depth, IBPartner)
            .select_from(downline)
            .join(IBPartner, IBPartner.id == downline.c.id)
            .where(downline.c.depth > 0)
            .order_by(downline.c.depth, IBPartner.id)
        )
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def get_children(self, ib_id: int) -> list[IBPartner]:
        """Get partners whose direct parent is ib_id."""
        return await self.find_by(parent_ib_id=ib_id)

    async def count_by_status(self) -> dict[str, int]:
        """
        Count partners grouped by status in a single query.

        Returns:
            Dict mapping status to count (statuses without rows are absent)
        """
        stmt = (
            select(IBPartner.status, func.count(IBPartner.id).label("count"))
            .group_by(IBPartner.status)
        )
        result = await self.session.execute(stmt)
        return {row.status: row.count for row in result.all()}

    async def count_on_plan(self, plan_id: int) -> int:
        """Count partners bound to a plan."""
        return await self.count(plan_id=plan_id)

    async def count_on_level(self, level_id: int) -> int:
        """Count partners sitting on a level."""
        return await self.count(level_id=level_id)

    async def code_exists(self, code: str) -> bool:
        """Check whether a referral code is taken."""
        return await self.exists(referral_code=code)

    async def get_with_dangling_parent(self) -> list[IBPartner]:
        """
        Get partners whose parent_ib_id points at a deleted partner.

        Returns:
            Partners needing remediation
        """
        parent = aliased(IBPartner)
        stmt = (
            select(IBPartner)
            .outerjoin(parent, parent.id == IBPartner.parent_ib_id)
            .where(IBPartner.parent_ib_id.is_not(None), parent.id.is_(None))
            .order_by(IBPartner.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
