"""Integration tests for commission posting."""

from decimal import Decimal

import pytest

from ib_network.models.enums import CommissionType, LedgerEntryType
from ib_network.repositories.commission_ledger_repository import (
    CommissionLedgerRepository,
)
from ib_network.services.commission import CommissionEngine
from ib_network.services.levels import LevelService
from ib_network.services.lifecycle import IBLifecycleService
from ib_network.services.notification import IBEventType
from ib_network.services.plans import PlanService
from ib_network.services.settings_service import IBSettingsSnapshot
from ib_network.utils.exceptions import UnknownEntry, ValidationError


async def ledger_amounts(session, event_id):
    """Ledger of one event as {beneficiary: amount}."""
    entries = await CommissionLedgerRepository(session).get_for_event(event_id)
    return {e.beneficiary_ib_id: e.amount for e in entries}


class TestCommissionEngine:
    """Integration tests for CommissionEngine.process."""

    @pytest.mark.asyncio
    async def test_three_level_chain(self, session, network, trade, ib_settings):
        """Trader under IB3 <- IB2 <- IB1 pays 5/3/2 per lot."""
        plan = await network.plan()
        ib1, ib2, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)

        result = await CommissionEngine(session).process(
            trade("trade-1", trader.user_id, lots="10"), ib_settings
        )

        assert result.success
        assert result.entry_count == 3
        assert result.total_amount == Decimal("100")
        assert await ledger_amounts(session, "trade-1") == {
            ib3.id: Decimal("50"),
            ib2.id: Decimal("30"),
            ib1.id: Decimal("20"),
        }
        assert [(p.ib_id, p.level) for p in result.posted] == [
            (ib3.id, 1),
            (ib2.id, 2),
            (ib1.id, 3),
        ]

    @pytest.mark.asyncio
    async def test_blocked_ancestor_skipped(
        self, session, network, trade, ib_settings
    ):
        """A blocked IB earns nothing but the walk continues above it."""
        plan = await network.plan()
        ib1, ib2, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)
        await IBLifecycleService(session).block(ib2.id, "Chargeback review")

        result = await CommissionEngine(session).process(
            trade("trade-2", trader.user_id, lots="10"), ib_settings
        )

        assert await ledger_amounts(session, "trade-2") == {
            ib3.id: Decimal("50"),
            ib1.id: Decimal("20"),
        }
        assert [(s.ib_id, s.level, s.reason) for s in result.skipped] == [
            (ib2.id, 2, "inactive")
        ]

    @pytest.mark.asyncio
    async def test_redelivery_is_idempotent(
        self, session, network, trade, ib_settings
    ):
        """The same event never pays twice."""
        plan = await network.plan()
        _, _, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)
        engine = CommissionEngine(session)
        event = trade("trade-3", trader.user_id, lots="10")

        first = await engine.process(event, ib_settings)
        second = await engine.process(event, ib_settings)

        assert first.entry_count == 3
        assert second.entry_count == 0
        assert second.duplicates == 3
        assert len(await engine.get_entries_for_event("trade-3")) == 3

    @pytest.mark.asyncio
    async def test_disabled_program_posts_nothing(self, session, network, trade):
        """Kill-switch off: success with zero entries."""
        plan = await network.plan()
        _, _, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)

        result = await CommissionEngine(session).process(
            trade("trade-4", trader.user_id),
            IBSettingsSnapshot(is_enabled=False),
        )

        assert result.success
        assert result.disabled
        assert result.entry_count == 0
        assert await ledger_amounts(session, "trade-4") == {}

    @pytest.mark.asyncio
    async def test_trader_without_referrer(
        self, session, network, trade, ib_settings
    ):
        """Unattributed trades post nothing."""
        await network.plan()
        trader = await network.trader(None)

        result = await CommissionEngine(session).process(
            trade("trade-5", trader.user_id), ib_settings
        )

        assert result.success
        assert result.entry_count == 0

    @pytest.mark.asyncio
    async def test_level_override(self, session, network, trade, ib_settings):
        """A level's downline rate replaces the plan rate."""
        plan = await network.plan()
        _, ib2, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)
        levels = LevelService(session)
        gold = await levels.create_level(
            "Gold", order=1, referral_target=0, downline_rates={1: 7}
        )
        await levels.set_partner_level(ib3.id, gold.id)

        result = await CommissionEngine(session).process(
            trade("trade-6", trader.user_id, lots="10"), ib_settings
        )

        amounts = await ledger_amounts(session, "trade-6")
        assert amounts[ib3.id] == Decimal("70")
        assert amounts[ib2.id] == Decimal("30")
        assert result.posted[0].rate_source == "level"

    @pytest.mark.asyncio
    async def test_inactive_level_ignored(
        self, session, network, trade, ib_settings
    ):
        """Deactivated levels stop overriding."""
        plan = await network.plan()
        _, _, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)
        levels = LevelService(session)
        gold = await levels.create_level(
            "Gold", order=1, referral_target=0, downline_rates={1: 7}
        )
        await levels.set_partner_level(ib3.id, gold.id)
        await levels.update_level(gold.id, is_active=False)

        await CommissionEngine(session).process(
            trade("trade-7", trader.user_id, lots="10"), ib_settings
        )

        amounts = await ledger_amounts(session, "trade-7")
        assert amounts[ib3.id] == Decimal("50")

    @pytest.mark.asyncio
    async def test_percentage_plan(self, session, network, trade, ib_settings):
        """PERCENTAGE plans pay a share of the notional."""
        plan = await network.plan(
            name="Percent",
            rates={1: "1.5", 2: "0.5"},
            commission_type=CommissionType.PERCENTAGE,
            max_levels=2,
        )
        _, ib2, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)

        await CommissionEngine(session).process(
            trade("trade-8", trader.user_id, lots="1", notional="2000"),
            ib_settings,
        )

        amounts = await ledger_amounts(session, "trade-8")
        assert amounts == {ib3.id: Decimal("30"), ib2.id: Decimal("10")}

    @pytest.mark.asyncio
    async def test_beneficiary_plan_depth(
        self, session, network, trade, ib_settings
    ):
        """Each ancestor is paid only within its own plan's max_levels."""
        deep = await network.plan(name="Deep", max_levels=3)
        shallow = await network.plan(name="Shallow", max_levels=2)
        root = await network.partner(plan=shallow)
        middle = await network.partner(parent=root, plan=deep)
        direct = await network.partner(parent=middle, plan=deep)
        trader = await network.trader(direct)

        result = await CommissionEngine(session).process(
            trade("trade-9", trader.user_id, lots="10"), ib_settings
        )

        assert set(await ledger_amounts(session, "trade-9")) == {
            direct.id,
            middle.id,
        }
        assert result.skipped[0].reason == "beyond_plan_depth"
        assert result.skipped[0].ib_id == root.id

    @pytest.mark.asyncio
    async def test_walk_stops_at_five_levels(self, session, network, trade):
        """No commission beyond distance five."""
        plan = await network.plan(
            name="Five", rates={1: 5, 2: 4, 3: 3, 4: 2, 5: 1}, max_levels=5
        )
        chain = await network.chain(plan, depth=6)
        trader = await network.trader(chain[-1])

        result = await CommissionEngine(session).process(
            trade("trade-10", trader.user_id, lots="1"),
            IBSettingsSnapshot(),
        )

        assert result.entry_count == 5
        assert chain[0].id not in await ledger_amounts(session, "trade-10")

    @pytest.mark.asyncio
    async def test_partner_without_plan_uses_default(
        self, session, network, trade, ib_settings
    ):
        """Unbound partners are paid by the default plan."""
        await network.plan(name="Default", rates={1: 4})
        direct = await network.partner()
        trader = await network.trader(direct)

        await CommissionEngine(session).process(
            trade("trade-11", trader.user_id, lots="2"), ib_settings
        )

        assert await ledger_amounts(session, "trade-11") == {
            direct.id: Decimal("8")
        }

    @pytest.mark.asyncio
    async def test_zero_rate_not_posted(
        self, session, network, trade, ib_settings
    ):
        """Zero amounts are skipped, not written."""
        plan = await network.plan(rates={1: 5, 2: 0, 3: 2})
        _, ib2, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)

        result = await CommissionEngine(session).process(
            trade("trade-12", trader.user_id), ib_settings
        )

        assert result.entry_count == 2
        assert (ib2.id, "zero_amount") in [
            (s.ib_id, s.reason) for s in result.skipped
        ]

    @pytest.mark.asyncio
    async def test_invalid_event(self, session, trade, ib_settings):
        """Malformed events are rejected before any write."""
        with pytest.raises(ValidationError):
            await CommissionEngine(session).process(
                trade("", 1), ib_settings
            )
        with pytest.raises(ValidationError):
            await CommissionEngine(session).process(
                trade("reversal:1", 1), ib_settings
            )

    @pytest.mark.asyncio
    async def test_commission_events_after_commit(
        self, session, network, trade, ib_settings, dispatcher, hook
    ):
        """One notification per posted entry."""
        plan = await network.plan()
        _, _, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)

        await CommissionEngine(session, dispatcher).process(
            trade("trade-13", trader.user_id), ib_settings
        )
        await dispatcher.drain()

        posted = hook.of_type(IBEventType.COMMISSION_POSTED)
        assert len(posted) == 3
        assert posted[0].ib_id == ib3.id
        assert posted[0].payload["event_id"] == "trade-13"


class TestCommissionReversal:
    """Integration tests for CommissionEngine.reverse_entry."""

    @pytest.mark.asyncio
    async def test_reverse_entry(self, session, network, trade, ib_settings):
        """A reversal is a new negative entry; the original is kept."""
        plan = await network.plan()
        _, _, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)
        engine = CommissionEngine(session)
        await engine.process(trade("trade-20", trader.user_id), ib_settings)
        entry = (await engine.get_entries_for_event("trade-20"))[0]

        reversal = await engine.reverse_entry(entry.id, "admin", "Trade busted")

        assert reversal.entry_type == LedgerEntryType.REVERSAL
        assert reversal.amount == -entry.amount
        assert reversal.reverses_entry_id == entry.id
        ledger = CommissionLedgerRepository(session)
        assert await ledger.total_for_beneficiary(ib3.id) == Decimal("0")
        assert (await ledger.get_by_id(entry.id)).amount == Decimal("50")

    @pytest.mark.asyncio
    async def test_reverse_twice_returns_same_reversal(
        self, session, network, trade, ib_settings
    ):
        plan = await network.plan()
        _, _, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)
        engine = CommissionEngine(session)
        await engine.process(trade("trade-21", trader.user_id), ib_settings)
        entry = (await engine.get_entries_for_event("trade-21"))[0]

        first = await engine.reverse_entry(entry.id, "admin", "Busted")
        second = await engine.reverse_entry(entry.id, "admin", "Busted again")

        assert first.id == second.id
        assert await CommissionLedgerRepository(session).total_for_beneficiary(
            ib3.id
        ) == Decimal("0")

    @pytest.mark.asyncio
    async def test_reversal_cannot_be_reversed(
        self, session, network, trade, ib_settings
    ):
        plan = await network.plan()
        _, _, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)
        engine = CommissionEngine(session)
        await engine.process(trade("trade-22", trader.user_id), ib_settings)
        entry = (await engine.get_entries_for_event("trade-22"))[0]
        reversal = await engine.reverse_entry(entry.id, "admin", "Busted")

        with pytest.raises(ValidationError):
            await engine.reverse_entry(reversal.id, "admin", "Undo")

    @pytest.mark.asyncio
    async def test_unknown_entry(self, session):
        with pytest.raises(UnknownEntry):
            await CommissionEngine(session).reverse_entry(999, "admin", "x")


class TestPlanChangesApplyToNewEvents:
    """Rate changes affect later events only."""

    @pytest.mark.asyncio
    async def test_existing_entries_unchanged(
        self, session, network, trade, ib_settings
    ):
        plan = await network.plan()
        _, _, ib3 = await network.chain(plan)
        trader = await network.trader(ib3)
        engine = CommissionEngine(session)
        await engine.process(trade("trade-30", trader.user_id), ib_settings)

        await PlanService(session).update_plan(plan.id, level_rates={1: 6})
        await engine.process(trade("trade-31", trader.user_id), ib_settings)

        assert (await ledger_amounts(session, "trade-30"))[ib3.id] == Decimal("50")
        assert (await ledger_amounts(session, "trade-31"))[ib3.id] == Decimal("60")
