"""
IB statistics service.

Read-only aggregates for the admin dashboard and per-partner views.
"""

from decimal import Decimal
from typing import Any

from ib_network.config.constants import COMMISSION_LEVELS, MAX_COMMISSION_DEPTH
from ib_network.models.commission_ledger_entry import CommissionLedgerEntry
from ib_network.models.enums import IBStatus, WithdrawalStatus
from ib_network.models.ib_partner import IBPartner
from ib_network.models.referred_user import ReferredUser
from ib_network.repositories.commission_ledger_repository import (
    CommissionLedgerRepository,
)
from ib_network.repositories.commission_plan_repository import (
    CommissionPlanRepository,
)
from ib_network.repositories.ib_level_repository import IBLevelRepository
from ib_network.repositories.ib_partner_repository import IBPartnerRepository
from ib_network.repositories.ib_withdrawal_repository import (
    IBWithdrawalRepository,
)
from ib_network.repositories.referred_user_repository import (
    ReferredUserRepository,
)
from ib_network.services.base_service import BaseService
from ib_network.services.referral.graph import ReferralGraph
from ib_network.services.wallet.withdrawal_service import WithdrawalService
from ib_network.utils.exceptions import UnknownIB


class IBStatisticsService(BaseService):
    """Admin aggregates over partners, ledger and withdrawals."""

    async def get_dashboard(self) -> dict[str, Any]:
        """
        Get program-wide figures.

        Returns:
            Dict with partner counts by status, ledger and withdrawal totals
        """
        partner_repo = IBPartnerRepository(self.session)
        by_status = await partner_repo.count_by_status()
        partners_by_status = {
            str(status): by_status.get(status, 0) for status in IBStatus
        }

        withdrawals = IBWithdrawalRepository(self.session)
        return {
            "partners_by_status": partners_by_status,
            "total_partners": sum(partners_by_status.values()),
            "pending_applications": partners_by_status[IBStatus.PENDING],
            "total_commission": await CommissionLedgerRepository(
                self.session
            ).total_volume(),
            "total_withdrawn": await withdrawals.total_by_status(
                WithdrawalStatus.COMPLETED
            ),
            "pending_withdrawals": await withdrawals.total_by_status(
                WithdrawalStatus.PENDING
            ),
            "total_plans": await CommissionPlanRepository(self.session).count(),
            "total_levels": await IBLevelRepository(self.session).count(),
        }

    async def get_partner_stats(self, ib_id: int) -> dict[str, Any]:
        """
        Get statistics of one partner.

        Args:
            ib_id: Partner ID

        Returns:
            Dict with referral counts, downline size per depth,
            commission per level and wallet figures

        Raises:
            UnknownIB: No such partner
        """
        graph = self.sibling(ReferralGraph)
        downline = await graph.descendants(ib_id, MAX_COMMISSION_DEPTH)

        partner = await IBPartnerRepository(self.session).get_by_id(ib_id)
        level = (
            await IBLevelRepository(self.session).get_by_id(partner.level_id)
            if partner.level_id is not None
            else None
        )
        plan = (
            await CommissionPlanRepository(self.session).get_by_id(partner.plan_id)
            if partner.plan_id is not None
            else None
        )

        by_depth = {depth: 0 for depth in COMMISSION_LEVELS}
        for depth, _ in downline:
            by_depth[depth] += 1

        breakdown = await CommissionLedgerRepository(self.session).level_breakdown(
            ib_id
        )
        commission_by_level = {
            level_no: breakdown.get(level_no, {"count": 0, "total": Decimal("0")})
            for level_no in COMMISSION_LEVELS
        }

        balance = await self.sibling(WithdrawalService).get_balance(ib_id)

        return {
            "ib_id": partner.id,
            "user_id": partner.user_id,
            "status": partner.status,
            "referral_code": partner.referral_code,
            "level": level.name if level else None,
            "plan": plan.name if plan else None,
            "direct_referrals": await ReferredUserRepository(
                self.session
            ).count_attributed_to(ib_id),
            "sub_ibs": len(
                await IBPartnerRepository(self.session).get_children(ib_id)
            ),
            "downline_size": len(downline),
            "downline_by_depth": by_depth,
            "commission_by_level": commission_by_level,
            "total_commission": sum(
                (row["total"] for row in commission_by_level.values()),
                Decimal("0"),
            ),
            "available_balance": balance.available,
            "total_withdrawn": balance.withdrawn,
        }

    async def get_direct_referrals(
        self, ib_id: int, limit: int | None = 50, offset: int | None = None
    ) -> list[ReferredUser]:
        """
        Page through users attributed directly to a partner.

        Raises:
            UnknownIB: No such partner
        """
        await self._require_partner(ib_id)
        return await ReferredUserRepository(self.session).get_attributed_to(
            ib_id, limit=limit, offset=offset
        )

    async def get_commission_history(
        self, ib_id: int, limit: int | None = 50, offset: int | None = None
    ) -> list[CommissionLedgerEntry]:
        """
        Page through ledger entries credited to a partner, oldest first.

        Reversals are listed as their own negative entries.

        Raises:
            UnknownIB: No such partner
        """
        await self._require_partner(ib_id)
        return await CommissionLedgerRepository(self.session).get_for_beneficiary(
            ib_id, limit=limit, offset=offset
        )

    async def get_downline_tree(
        self, ib_id: int, max_depth: int = MAX_COMMISSION_DEPTH
    ) -> dict[str, Any]:
        """
        Get a partner's downline as a nested tree.

        Returns:
            {"ib_id", "user_id", "status", "level_id", "referral_count",
            "children": [...]} rooted at the partner

        Raises:
            UnknownIB: No such partner
        """
        downline = await self.sibling(ReferralGraph).descendants(ib_id, max_depth)
        root = await IBPartnerRepository(self.session).get_by_id(ib_id)

        nodes = {root.id: self._node(root)}
        for _, partner in downline:
            nodes[partner.id] = self._node(partner)
        for _, partner in downline:
            parent = nodes.get(partner.parent_ib_id)
            if parent is not None:
                parent["children"].append(nodes[partner.id])
        return nodes[root.id]

    async def _require_partner(self, ib_id: int) -> IBPartner:
        partner = await IBPartnerRepository(self.session).get_by_id(ib_id)
        if not partner:
            raise UnknownIB(f"IB partner {ib_id} not found", ib_id=ib_id)
        return partner

    @staticmethod
    def _node(partner: IBPartner) -> dict[str, Any]:
        return {
            "ib_id": partner.id,
            "user_id": partner.user_id,
            "status": partner.status,
            "level_id": partner.level_id,
            "referral_count": partner.referral_count,
            "children": [],
        }
