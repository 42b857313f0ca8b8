"""
Referral graph service.

The referral tree is a forest: partners point at their upline through
parent_ib_id, referred users point at their partner through
referred_by_ib_id. Both are weak references without foreign keys.

Every edge write checks for cycles and goes through a version
compare-and-set, so a concurrent writer surfaces as ConcurrencyConflict
instead of a lost update.
"""

from datetime import UTC, datetime

from ib_network.config.constants import MAX_COMMISSION_DEPTH, MAX_TREE_DEPTH
from ib_network.models.ib_partner import IBPartner
from ib_network.models.referral_transfer_audit import ReferralTransferAudit
from ib_network.models.referred_user import ReferredUser
from ib_network.repositories.ib_partner_repository import IBPartnerRepository
from ib_network.repositories.referred_user_repository import (
    ReferredUserRepository,
)
from ib_network.services.base_service import BaseService, transaction
from ib_network.services.levels.level_service import LevelService
from ib_network.services.notification import IBEvent, IBEventType
from ib_network.utils.exceptions import (
    AlreadyAttributed,
    CycleDetected,
    UnknownIB,
    ValidationError,
)
from ib_network.validators import validate_actor


class ReferralGraph(BaseService):
    """Referral edges and bounded upline/downline queries."""

    @transaction
    async def attach(self, referred_user_id: int, ib_id: int) -> ReferredUser:
        """
        Attribute a user to a partner (signup).

        Args:
            referred_user_id: Platform user ID
            ib_id: Referring partner ID

        Returns:
            Attribution record

        Raises:
            UnknownIB: Partner missing or not ACTIVE
            AlreadyAttributed: User already has a referring partner
            CycleDetected: User is the partner itself or one of its upline
            ConcurrencyConflict: Partner or record changed concurrently
        """
        target = await self._get_active_partner(ib_id)
        return await self._attach(referred_user_id, target)

    @transaction
    async def attach_by_code(
        self, referred_user_id: int, referral_code: str
    ) -> ReferredUser:
        """
        Attribute a user to the partner owning a referral code.

        Raises:
            UnknownIB: Code unknown or its partner not ACTIVE
            AlreadyAttributed / CycleDetected / ConcurrencyConflict
        """
        if not isinstance(referral_code, str) or not referral_code.strip():
            raise ValidationError(
                "Referral code is required", field="referral_code"
            )

        code = referral_code.strip().upper()
        partner = await IBPartnerRepository(self.session).get_by_referral_code(
            code
        )
        if not partner or not partner.is_active:
            raise UnknownIB(
                f"No active IB partner with code {code}", referral_code=code
            )
        return await self._attach(referred_user_id, partner)

    @transaction
    async def reparent(
        self, referred_user_id: int, new_ib_id: int, actor: str
    ) -> ReferralTransferAudit | None:
        """
        Overwrite a user's attribution (audited admin action).

        Args:
            referred_user_id: Platform user ID
            new_ib_id: New referring partner
            actor: Admin performing the change

        Returns:
            Audit record, None when the user already belongs to new_ib_id

        Raises:
            UnknownIB: Target missing or not ACTIVE
            CycleDetected: User is an IB and target is itself or below it
        """
        actor = validate_actor(actor)
        target = await self._get_active_partner(new_ib_id)
        audit = await self._reparent(referred_user_id, target, actor)
        if audit:
            self.emit(
                IBEvent(
                    IBEventType.REFERRALS_TRANSFERRED,
                    target.id,
                    {
                        "user_id": referred_user_id,
                        "previous_ib_id": audit.previous_ib_id,
                        "actor": actor,
                    },
                )
            )
        return audit

    async def ancestor_chain(
        self, ib_id: int, max_depth: int = MAX_COMMISSION_DEPTH
    ) -> list[int]:
        """
        Get ancestor IDs, root-most first, direct parent last.

        Args:
            ib_id: Partner ID
            max_depth: Number of nearest ancestors kept

        Returns:
            Ancestor IDs (the partner itself excluded)

        Raises:
            UnknownIB: No such partner
        """
        depth = self._validate_depth(max_depth)
        repo = IBPartnerRepository(self.session)
        if not await repo.get_by_id(ib_id):
            raise UnknownIB(f"IB partner {ib_id} not found", ib_id=ib_id)
        if depth == 0:
            return []

        nearest_first = await repo.get_upline_ids(ib_id, depth)
        return [ancestor_id for _, ancestor_id in reversed(nearest_first)]

    async def upline(
        self, ib_id: int, max_depth: int = MAX_COMMISSION_DEPTH
    ) -> list[tuple[int, int]]:
        """
        Walk up from a partner as (distance, ib_id) pairs.

        Distance 1 is the partner itself. A missing partner gives an empty
        walk; a dangling parent reference ends it.

        Args:
            ib_id: Direct referring partner of a trader
            max_depth: Deepest distance returned

        Returns:
            Pairs nearest first
        """
        depth = self._validate_depth(max_depth)
        repo = IBPartnerRepository(self.session)
        if depth == 0 or not await repo.get_by_id(ib_id):
            return []

        above = await repo.get_upline_ids(ib_id, depth - 1) if depth > 1 else []
        return [(1, ib_id)] + [(d + 1, ancestor) for d, ancestor in above]

    async def descendants(
        self, ib_id: int, max_depth: int = MAX_COMMISSION_DEPTH
    ) -> list[tuple[int, IBPartner]]:
        """
        Get the partner's downline.

        Returns:
            (distance, partner) pairs ordered by distance

        Raises:
            UnknownIB: No such partner
        """
        depth = self._validate_depth(max_depth)
        repo = IBPartnerRepository(self.session)
        if not await repo.get_by_id(ib_id):
            raise UnknownIB(f"IB partner {ib_id} not found", ib_id=ib_id)
        if depth == 0:
            return []
        return await repo.get_downline(ib_id, depth)

    # Helpers below run inside the caller's transaction and never commit

    async def _get_active_partner(self, ib_id: int) -> IBPartner:
        partner = await IBPartnerRepository(self.session).get_fresh(ib_id)
        if not partner or not partner.is_active:
            raise UnknownIB(
                f"IB partner {ib_id} not found or not active", ib_id=ib_id
            )
        return partner

    async def _attach(
        self, referred_user_id: int, target: IBPartner
    ) -> ReferredUser:
        user_repo = ReferredUserRepository(self.session)
        partner_repo = IBPartnerRepository(self.session)

        record = await user_repo.get_by_user_id(referred_user_id, fresh=True)
        if record and record.referred_by_ib_id is not None:
            raise AlreadyAttributed(
                f"User {referred_user_id} is already attributed",
                user_id=referred_user_id,
                ib_id=record.referred_by_ib_id,
            )

        # A user who is a partner joins the target's downline as well
        moved = await partner_repo.get_by_user_id(referred_user_id, fresh=True)
        if moved:
            await self._check_no_cycle(moved.id, target.id)

        now = datetime.now(UTC)
        if record:
            await user_repo.update_versioned(
                record, referred_by_ib_id=target.id, attributed_at=now
            )
        else:
            record = await user_repo.create(
                user_id=referred_user_id,
                referred_by_ib_id=target.id,
                attributed_at=now,
            )

        if moved and moved.parent_ib_id is None:
            await partner_repo.update_versioned(moved, parent_ib_id=target.id)

        await partner_repo.update_versioned(
            target, referral_count=target.referral_count + 1
        )
        await self.sibling(LevelService)._promote_if_qualified(target)

        self.logger.info(
            "Referral attached",
            extra={
                "user_id": referred_user_id,
                "ib_id": target.id,
                "referral_count": target.referral_count,
            },
        )
        self.emit(
            IBEvent(
                IBEventType.REFERRAL_ATTACHED,
                target.id,
                {
                    "user_id": referred_user_id,
                    "referral_count": target.referral_count,
                },
            )
        )
        return record

    async def _reparent(
        self, referred_user_id: int, target: IBPartner, actor: str
    ) -> ReferralTransferAudit | None:
        """
        Move a user (and its partner record, if any) under target.

        Returns:
            Audit record, None when already attributed to target
        """
        user_repo = ReferredUserRepository(self.session)
        partner_repo = IBPartnerRepository(self.session)

        record = await user_repo.get_by_user_id(referred_user_id, fresh=True)
        previous_ib_id = record.referred_by_ib_id if record else None
        if previous_ib_id == target.id:
            return None

        moved = await partner_repo.get_by_user_id(referred_user_id, fresh=True)
        if moved:
            await self._check_no_cycle(moved.id, target.id)

        now = datetime.now(UTC)
        if record:
            await user_repo.update_versioned(
                record, referred_by_ib_id=target.id, attributed_at=now
            )
        else:
            record = await user_repo.create(
                user_id=referred_user_id,
                referred_by_ib_id=target.id,
                attributed_at=now,
            )

        if moved and moved.parent_ib_id != target.id:
            await partner_repo.update_versioned(moved, parent_ib_id=target.id)

        audit = await user_repo.add_transfer_audit(
            user_id=referred_user_id,
            previous_ib_id=previous_ib_id,
            new_ib_id=target.id,
            actor=actor,
            moved_ib_id=moved.id if moved else None,
        )

        levels = self.sibling(LevelService)
        if previous_ib_id is not None:
            previous = await partner_repo.get_fresh(previous_ib_id)
            if previous:
                await levels._sync_referral_count(previous)
        await levels._sync_referral_count(target)
        await levels._promote_if_qualified(target)

        self.logger.info(
            "Referral reparented",
            extra={
                "user_id": referred_user_id,
                "previous_ib_id": previous_ib_id,
                "new_ib_id": target.id,
                "moved_ib_id": moved.id if moved else None,
                "actor": actor,
            },
        )
        return audit

    async def _check_no_cycle(self, moved_ib_id: int, new_parent_id: int) -> None:
        """
        Reject an edge new_parent -> moved that would close a loop.

        Raises:
            CycleDetected: new_parent is moved itself or one of its descendants
        """
        if moved_ib_id == new_parent_id:
            raise CycleDetected(
                f"IB partner {moved_ib_id} cannot refer itself",
                ib_id=moved_ib_id,
            )

        upline = await IBPartnerRepository(self.session).get_upline_ids(
            new_parent_id, MAX_TREE_DEPTH
        )
        if any(ancestor == moved_ib_id for _, ancestor in upline):
            raise CycleDetected(
                f"IB partner {new_parent_id} is in the downline of {moved_ib_id}",
                ib_id=moved_ib_id,
                target_ib_id=new_parent_id,
            )

    @staticmethod
    def _validate_depth(max_depth: int) -> int:
        if isinstance(max_depth, bool) or not isinstance(max_depth, int) or max_depth < 0:
            raise ValidationError(
                "max_depth must be a non-negative integer", field="max_depth"
            )
        return max_depth
