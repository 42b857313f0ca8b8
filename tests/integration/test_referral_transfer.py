"""Integration tests for bulk referral transfers."""

import pytest

from ib_network.models.enums import IBStatus
from ib_network.repositories.ib_partner_repository import IBPartnerRepository
from ib_network.repositories.referred_user_repository import (
    ReferredUserRepository,
)
from ib_network.services.notification import IBEventType
from ib_network.services.referral import ReferralGraph, ReferralTransferService
from ib_network.utils.exceptions import UnknownIB, ValidationError


class TestReferralTransfer:
    """Integration tests for ReferralTransferService."""

    @pytest.mark.asyncio
    async def test_partial_batch(self, session, network, dispatcher, hook):
        """A cycle-forming entry fails alone; the rest are moved."""
        old = await network.partner()
        upper, target = await network.chain(None, depth=2)
        graph = ReferralGraph(session)
        await graph.attach(7001, old.id)
        await graph.attach(7002, old.id)
        old_id, target_id, upper_user_id = old.id, target.id, upper.user_id

        result = await ReferralTransferService(session, dispatcher).transfer(
            [7001, upper_user_id, 7002], target_id, "admin"
        )
        await dispatcher.drain()

        assert result.transferred == [7001, 7002]
        assert result.failed_user_ids == [upper_user_id]
        assert result.failures[0]["reason"] == "cycle_detected"
        assert not result.success

        users = ReferredUserRepository(session)
        for user_id in (7001, 7002):
            record = await users.get_by_user_id(user_id, fresh=True)
            assert record.referred_by_ib_id == target_id
        partners = IBPartnerRepository(session)
        assert (await partners.get_fresh(old_id)).referral_count == 0
        assert (await partners.get_fresh(target_id)).referral_count == 2

        summary = hook.of_type(IBEventType.REFERRALS_TRANSFERRED)
        assert summary[-1].payload["transferred_count"] == 2

    @pytest.mark.asyncio
    async def test_set_of_user_ids(self, session, network):
        """A set is accepted and moved in ascending user ID order."""
        old, target = await network.partner(), await network.partner()
        first = await network.trader(old)
        second = await network.trader(old)
        old_id, target_id = old.id, target.id
        user_ids = {second.user_id, first.user_id}

        result = await ReferralTransferService(session).transfer(
            user_ids, target_id, "admin"
        )

        assert result.transferred == sorted(user_ids)
        assert result.success
        users = ReferredUserRepository(session)
        for user_id in user_ids:
            record = await users.get_by_user_id(user_id, fresh=True)
            assert record.referred_by_ib_id == target_id
        partners = IBPartnerRepository(session)
        assert (await partners.get_fresh(target_id)).referral_count == 2
        assert (await partners.get_fresh(old_id)).referral_count == 0

    @pytest.mark.asyncio
    async def test_frozenset_and_generator(self, session, network):
        target = await network.partner()
        target_id = target.id
        service = ReferralTransferService(session)

        frozen = await service.transfer(frozenset({7042, 7041}), target_id, "admin")
        generated = await service.transfer(
            (user_id for user_id in (7043, 7043)), target_id, "admin"
        )

        assert frozen.transferred == [7041, 7042]
        assert generated.transferred == [7043]

    @pytest.mark.asyncio
    async def test_already_under_target_skipped(self, session, network):
        target = await network.partner()
        await ReferralGraph(session).attach(7010, target.id)

        result = await ReferralTransferService(session).transfer(
            [7010, 7010], target.id, "admin"
        )

        assert result.transferred == []
        assert result.skipped == [7010]
        assert result.success

    @pytest.mark.asyncio
    async def test_unattributed_user_transferred(self, session, network):
        """Users without a record get one under the target."""
        target = await network.partner()

        result = await ReferralTransferService(session).transfer(
            [7020], target.id, "admin"
        )

        assert result.transferred_count == 1
        record = await ReferredUserRepository(session).get_by_user_id(7020)
        assert record.referred_by_ib_id == target.id

    @pytest.mark.asyncio
    async def test_inactive_target(self, session, network):
        target = await network.partner(status=IBStatus.SUSPENDED)

        with pytest.raises(UnknownIB):
            await ReferralTransferService(session).transfer(
                [7030], target.id, "admin"
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "user_ids", [[], set(), None, "7001", {7001: 1}, [1, "2"], {True}]
    )
    async def test_malformed_batch(self, session, network, user_ids):
        target = await network.partner()

        with pytest.raises(ValidationError):
            await ReferralTransferService(session).transfer(
                user_ids, target.id, "admin"
            )

    @pytest.mark.asyncio
    async def test_actor_required(self, session, network):
        target = await network.partner()

        with pytest.raises(ValidationError):
            await ReferralTransferService(session).transfer([1], target.id, "")

    @pytest.mark.asyncio
    async def test_retry_failed(self, session, network):
        """Failed entries can be retried once the blocker is gone."""
        upper, target = await network.chain(None, depth=2)
        elsewhere = await network.partner()
        upper_user_id, target_id = upper.user_id, target.id
        target_user_id, elsewhere_id = target.user_id, elsewhere.id
        service = ReferralTransferService(session)

        first = await service.transfer([upper_user_id], target_id, "admin")
        assert first.failed_user_ids == [upper_user_id]

        # Detach the target from the moved partner's subtree
        await ReferralGraph(session).reparent(
            target_user_id, elsewhere_id, "admin"
        )
        second = await service.retry_failed(first, "admin")

        assert second.transferred == [upper_user_id]
        assert second.success

    @pytest.mark.asyncio
    async def test_history(self, session, network):
        first = await network.partner()
        second = await network.partner()
        service = ReferralTransferService(session)

        await service.transfer([7040], first.id, "alice")
        await service.transfer([7040], second.id, "bob")

        history = await service.get_history(7040)
        assert [(h.previous_ib_id, h.new_ib_id, h.actor) for h in history] == [
            (None, first.id, "alice"),
            (first.id, second.id, "bob"),
        ]
