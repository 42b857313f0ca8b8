"""
Referred user repository.

Data access layer for ReferredUser and the transfer audit trail.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ib_network.models.ib_partner import IBPartner
from ib_network.models.referral_transfer_audit import ReferralTransferAudit
from ib_network.models.referred_user import ReferredUser
from ib_network.repositories.base import BaseRepository


class ReferredUserRepository(BaseRepository[ReferredUser]):
    """Referred user repository with attribution queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referred user repository."""
        super().__init__(ReferredUser, session)

    async def get_by_user_id(
        self, user_id: int, fresh: bool = False
    ) -> ReferredUser | None:
        """
        Get attribution record of a platform user.

        Args:
            user_id: Platform user ID
            fresh: Bypass the identity map (needed before version checks)

        Returns:
            Record or None if the user never signed up through the network
        """
        stmt = select(ReferredUser).where(ReferredUser.user_id == user_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_attributed_to(self, ib_id: int) -> int:
        """
        Count users attributed directly to a partner.

        Args:
            ib_id: Partner ID

        Returns:
            Direct referral count
        """
        stmt = select(func.count(ReferredUser.id)).where(
            ReferredUser.referred_by_ib_id == ib_id
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_attributed_to(
        self, ib_id: int, limit: int | None = None, offset: int | None = None
    ) -> list[ReferredUser]:
        """Get users attributed directly to a partner."""
        return await self.find_all(
            limit=limit, offset=offset, referred_by_ib_id=ib_id
        )

    async def get_with_dangling_referrer(self) -> list[ReferredUser]:
        """
        Get users attributed to a partner that no longer exists.

        Returns:
            Records needing remediation through a transfer
        """
        partner = aliased(IBPartner)
        stmt = (
            select(ReferredUser)
            .outerjoin(partner, partner.id == ReferredUser.referred_by_ib_id)
            .where(
                ReferredUser.referred_by_ib_id.is_not(None),
                partner.id.is_(None),
            )
            .order_by(ReferredUser.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_transfer_audit(
        self,
        user_id: int,
        previous_ib_id: int | None,
        new_ib_id: int,
        actor: str,
        moved_ib_id: int | None = None,
    ) -> ReferralTransferAudit:
        """
        Append an attribution overwrite to the audit trail.

        Returns:
            Created audit record
        """
        audit = ReferralTransferAudit(
            user_id=user_id,
            previous_ib_id=previous_ib_id,
            new_ib_id=new_ib_id,
            moved_ib_id=moved_ib_id,
            actor=actor,
        )
        self.session.add(audit)
        await self.session.flush()
        return audit

    async def get_transfer_history(
        self, user_id: int
    ) -> list[ReferralTransferAudit]:
        """Get audit trail of a user's attribution, oldest first."""
        stmt = (
            select(ReferralTransferAudit)
            .where(ReferralTransferAudit.user_id == user_id)
            .order_by(ReferralTransferAudit.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
