"""Integration tests for partner applications and status transitions."""

from unittest.mock import AsyncMock, patch

import pytest

from ib_network.models.enums import IBStatus
from ib_network.services.levels import LevelService
from ib_network.services.lifecycle import IBLifecycleService, StaticKycProvider
from ib_network.services.notification import IBEventType
from ib_network.services.referral import ReferralGraph
from ib_network.services.settings_service import IBSettingsSnapshot
from ib_network.utils.exceptions import (
    ConcurrencyConflict,
    DisabledError,
    DuplicateApplication,
    InvalidTransition,
    KycRequired,
    UnknownIB,
    UnknownPlan,
    ValidationError,
)


class TestApply:
    """Integration tests for IB applications."""

    @pytest.mark.asyncio
    async def test_apply_creates_pending(
        self, session, ib_settings, dispatcher, hook
    ):
        service = IBLifecycleService(session, dispatcher)

        partner = await service.apply(8001, ib_settings)
        await dispatcher.drain()

        assert partner.status == IBStatus.PENDING
        assert partner.referral_code is None
        history = await service.get_status_history(partner.id)
        assert [(h.from_status, h.to_status, h.action) for h in history] == [
            (None, IBStatus.PENDING, "apply")
        ]
        assert hook.of_type(IBEventType.APPLICATION_RECEIVED)

    @pytest.mark.asyncio
    async def test_parent_from_attribution(self, session, network, ib_settings):
        """An applicant referred by an IB joins that IB's downline."""
        upline = await network.partner()
        await ReferralGraph(session).attach(8002, upline.id)

        partner = await IBLifecycleService(session).apply(8002, ib_settings)

        assert partner.parent_ib_id == upline.id

    @pytest.mark.asyncio
    async def test_duplicate_application(self, session, ib_settings):
        service = IBLifecycleService(session)
        await service.apply(8003, ib_settings)

        with pytest.raises(DuplicateApplication):
            await service.apply(8003, ib_settings)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "snapshot",
        [
            IBSettingsSnapshot(is_enabled=False),
            IBSettingsSnapshot(allow_new_applications=False),
        ],
    )
    async def test_applications_closed(self, session, snapshot):
        with pytest.raises(DisabledError):
            await IBLifecycleService(session).apply(8004, snapshot)

    @pytest.mark.asyncio
    async def test_invalid_user(self, session, ib_settings):
        with pytest.raises(ValidationError):
            await IBLifecycleService(session).apply(0, ib_settings)

    @pytest.mark.asyncio
    async def test_auto_approve(self, session, network):
        """auto_approve with KYC satisfied activates at once."""
        await network.plan()
        service = IBLifecycleService(
            session, kyc_provider=StaticKycProvider({8005})
        )

        partner = await service.apply(
            8005, IBSettingsSnapshot(auto_approve=True, kyc_required=True)
        )

        assert partner.status == IBStatus.ACTIVE
        assert partner.approved_by == "auto_approve"
        assert partner.referral_code is not None

    @pytest.mark.asyncio
    async def test_auto_approve_waits_for_kyc(self, session, network):
        """Without KYC an auto-approved application stays pending."""
        await network.plan()

        partner = await IBLifecycleService(session).apply(
            8006, IBSettingsSnapshot(auto_approve=True, kyc_required=True)
        )

        assert partner.status == IBStatus.PENDING


class TestApprove:
    """Integration tests for admin approval."""

    @pytest.mark.asyncio
    async def test_approve_binds_default_plan(
        self, session, network, ib_settings
    ):
        plan = await network.plan()
        levels = LevelService(session)
        standard = await levels.create_level("Standard", order=1, referral_target=0)
        service = IBLifecycleService(session)
        partner = await service.apply(8010, ib_settings)

        partner = await service.approve(
            partner.id, settings=ib_settings, actor="admin"
        )

        assert partner.status == IBStatus.ACTIVE
        assert partner.plan_id == plan.id
        assert partner.level_id == standard.id
        assert partner.approved_by == "admin"
        assert partner.approved_at is not None
        assert partner.referral_code.startswith("IB")

    @pytest.mark.asyncio
    async def test_approve_with_plan(self, session, network, ib_settings):
        await network.plan()
        vip = await network.plan(name="VIP", rates={1: 9})
        service = IBLifecycleService(session)
        partner = await service.apply(8011, ib_settings)

        partner = await service.approve(partner.id, vip.id, settings=ib_settings)

        assert partner.plan_id == vip.id

    @pytest.mark.asyncio
    async def test_approve_without_plans(self, session, ib_settings):
        service = IBLifecycleService(session)
        partner = await service.apply(8012, ib_settings)
        ib_id = partner.id

        with pytest.raises(UnknownPlan):
            await service.approve(ib_id, settings=ib_settings)

        assert (await service.get_partner(ib_id)).status == IBStatus.PENDING

    @pytest.mark.asyncio
    async def test_kyc_required(self, session, network):
        """KYC gate blocks approval until the provider confirms."""
        await network.plan()
        kyc = StaticKycProvider()
        service = IBLifecycleService(session, kyc_provider=kyc)
        snapshot = IBSettingsSnapshot(kyc_required=True)
        partner = await service.apply(8013, snapshot)
        ib_id = partner.id

        with pytest.raises(KycRequired):
            await service.approve(ib_id, settings=snapshot)
        assert (await service.get_partner(ib_id)).status == IBStatus.PENDING

        kyc.approve(8013)
        partner = await service.approve(ib_id, settings=snapshot)
        assert partner.status == IBStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_approve_loads_settings(self, session, network):
        """Omitted settings are read from storage (KYC required by default)."""
        await network.plan()
        service = IBLifecycleService(session)
        partner = await service.apply(8014, IBSettingsSnapshot())

        with pytest.raises(KycRequired):
            await service.approve(partner.id)

    @pytest.mark.asyncio
    async def test_approve_active_partner(self, session, network, ib_settings):
        ib = await network.partner()

        with pytest.raises(InvalidTransition):
            await IBLifecycleService(session).approve(ib.id, settings=ib_settings)

    @pytest.mark.asyncio
    async def test_unknown_partner(self, session, ib_settings):
        with pytest.raises(UnknownIB):
            await IBLifecycleService(session).approve(404, settings=ib_settings)


class TestTransitions:
    """Integration tests for reject, block and suspend."""

    @pytest.mark.asyncio
    async def test_reject_is_terminal(self, session, network, ib_settings):
        await network.plan()
        service = IBLifecycleService(session)
        partner = await service.apply(8020, ib_settings)
        ib_id = partner.id

        partner = await service.reject(ib_id, "Incomplete documents", "admin")
        assert partner.status == IBStatus.REJECTED
        assert partner.status_reason == "Incomplete documents"
        assert partner.rejected_at is not None

        with pytest.raises(InvalidTransition):
            await service.approve(ib_id, settings=ib_settings)

    @pytest.mark.asyncio
    async def test_block_and_unblock(self, session, network, dispatcher, hook):
        ib = await network.partner(referral_code="IBKEEP01")
        service = IBLifecycleService(session, dispatcher)

        blocked = await service.block(ib.id, "Abuse report", "admin")
        assert blocked.status == IBStatus.BLOCKED

        active = await service.unblock(ib.id, "admin")
        await dispatcher.drain()

        assert active.status == IBStatus.ACTIVE
        assert active.status_reason is None
        assert active.referral_code == "IBKEEP01"
        changes = hook.of_type(IBEventType.STATUS_CHANGED)
        assert [e.payload["to_status"] for e in changes] == ["BLOCKED", "ACTIVE"]

    @pytest.mark.asyncio
    async def test_suspend_and_reinstate(self, session, network):
        ib = await network.partner()
        ib_id = ib.id
        service = IBLifecycleService(session)

        await service.suspend(ib_id, "Compliance check")
        with pytest.raises(InvalidTransition):
            await service.unblock(ib_id)

        partner = await service.reinstate(ib_id)
        assert partner.status == IBStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_reason_required(self, session, network):
        ib = await network.partner()

        with pytest.raises(ValidationError):
            await IBLifecycleService(session).block(ib.id, "  ")

    @pytest.mark.asyncio
    async def test_reinstate_applies_missed_promotion(self, session, network):
        """Levels added while suspended apply on reinstatement."""
        ib = await network.partner()
        ib_id = ib.id
        await ReferralGraph(session).attach(8030, ib_id)
        service = IBLifecycleService(session)
        await service.suspend(ib_id, "Review")
        levels = LevelService(session)
        await levels.create_level("Standard", order=1, referral_target=0)
        silver = await levels.create_level("Silver", order=2, referral_target=1)

        partner = await service.reinstate(ib_id)

        assert partner.level_id == silver.id

    @pytest.mark.asyncio
    async def test_history_records_every_transition(self, session, network):
        ib = await network.partner()
        service = IBLifecycleService(session)
        await service.block(ib.id, "Abuse", "alice")
        await service.unblock(ib.id, "bob")

        history = await service.get_status_history(ib.id)

        assert [(h.action, h.actor) for h in history] == [
            ("block", "alice"),
            ("unblock", "bob"),
        ]
        assert history[0].reason == "Abuse"

    @pytest.mark.asyncio
    async def test_list_partners(self, session, network):
        await network.partner()
        await network.partner(status=IBStatus.PENDING)
        service = IBLifecycleService(session)

        assert len(await service.list_partners()) == 2
        assert len(await service.list_partners(status="PENDING")) == 1
        with pytest.raises(ValidationError):
            await service.list_partners(status="GONE")


class TestConcurrentTransitions:
    """Two admin actions on one partner cannot both succeed."""

    @pytest.mark.asyncio
    async def test_stale_reject_loses_to_approve(
        self, session_maker, network, ib_settings
    ):
        """A reject that read the partner before an approval committed fails."""
        await network.plan(is_default=True)
        pending = await network.partner(status=IBStatus.PENDING)
        ib_id = pending.id

        async with session_maker() as stale_session, session_maker() as admin_session:
            stale_service = IBLifecycleService(stale_session)
            stale = await stale_service.get_partner(ib_id)
            await stale_session.commit()

            approved = await IBLifecycleService(admin_session).approve(
                ib_id, settings=ib_settings, actor="admin1"
            )
            assert approved.status == IBStatus.ACTIVE

            with patch.object(
                stale_service, "get_partner", AsyncMock(return_value=stale)
            ):
                with pytest.raises(ConcurrencyConflict):
                    await stale_service.reject(
                        ib_id, "duplicate account", actor="admin2"
                    )

        async with session_maker() as check_session:
            service = IBLifecycleService(check_session)
            partner = await service.get_partner(ib_id)
            history = await service.get_status_history(ib_id)

        assert partner.status == IBStatus.ACTIVE
        assert partner.status_reason is None
        assert [(h.from_status, h.to_status) for h in history] == [
            (IBStatus.PENDING, IBStatus.ACTIVE)
        ]

    @pytest.mark.asyncio
    async def test_reject_after_approve_is_invalid(
        self, session_maker, network, ib_settings
    ):
        """Once the approval is visible, a later reject is refused outright."""
        await network.plan(is_default=True)
        pending = await network.partner(status=IBStatus.PENDING)
        ib_id = pending.id

        async with session_maker() as admin_session:
            await IBLifecycleService(admin_session).approve(
                ib_id, settings=ib_settings
            )

        async with session_maker() as other_session:
            with pytest.raises(InvalidTransition):
                await IBLifecycleService(other_session).reject(
                    ib_id, "duplicate account"
                )


class TestDeletePartner:
    """Integration tests for partner deletion without cascade."""

    @pytest.mark.asyncio
    async def test_delete_leaves_dangling_references(self, session, network):
        root, child = await network.chain(None, depth=2)
        trader = await network.trader(root)
        root_id, child_id, trader_id = root.id, child.id, trader.id
        service = IBLifecycleService(session)

        dangling = await service.delete_partner(root_id, "admin")

        assert dangling == {"children": 1, "referred_users": 1}
        references = await service.find_dangling_references()
        assert [p.id for p in references.partners] == [child_id]
        assert [u.id for u in references.referred_users] == [trader_id]
        assert references.total == 2
        with pytest.raises(UnknownIB):
            await service.get_partner(root_id)

    @pytest.mark.asyncio
    async def test_transfer_remediates(self, session, network):
        """Dangling users are fixed by moving them to a live partner."""
        root = await network.partner()
        heir = await network.partner()
        trader = await network.trader(root)
        service = IBLifecycleService(session)
        await service.delete_partner(root.id, "admin")

        await ReferralGraph(session).reparent(trader.user_id, heir.id, "admin")

        assert (await service.find_dangling_references()).total == 0
