"""
Commission engine.

Turns a closed trade into ledger entries for every eligible partner above
the trader. Posting is idempotent per (event, beneficiary): the ledger's
unique constraint decides, so a redelivered event or two workers racing on
the same event never pay twice.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from ib_network.config.constants import MAX_COMMISSION_DEPTH
from ib_network.models.commission_ledger_entry import CommissionLedgerEntry
from ib_network.models.commission_plan import CommissionPlan
from ib_network.models.enums import LedgerEntryType
from ib_network.repositories.commission_ledger_repository import (
    CommissionLedgerRepository,
)
from ib_network.repositories.commission_plan_repository import (
    CommissionPlanRepository,
)
from ib_network.repositories.ib_level_repository import IBLevelRepository
from ib_network.repositories.ib_partner_repository import IBPartnerRepository
from ib_network.repositories.referred_user_repository import (
    ReferredUserRepository,
)
from ib_network.services.base_service import BaseService, transaction
from ib_network.services.commission.calculator import compute_amount, select_rate
from ib_network.services.notification import IBEvent, IBEventType
from ib_network.services.referral.graph import ReferralGraph
from ib_network.services.settings_service import IBSettingsSnapshot
from ib_network.utils.exceptions import UnknownEntry, ValidationError
from ib_network.validators import validate_actor, validate_decimal, validate_name


REVERSAL_PREFIX = "reversal:"


@dataclass(frozen=True)
class TradeCloseEvent:
    """A closed trade reported by the trading platform."""

    event_id: str
    originating_user_id: int
    lots: Decimal
    notional_amount: Decimal

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> "TradeCloseEvent":
        """
        Parse a queue message.

        Raises:
            ValidationError: Missing or malformed fields
        """
        try:
            return cls(
                event_id=data["event_id"],
                originating_user_id=data["originating_user_id"],
                lots=validate_decimal(data.get("lots", 0), "lots"),
                notional_amount=validate_decimal(
                    data.get("notional_amount", 0), "notional_amount"
                ),
            )
        except KeyError as e:
            raise ValidationError(
                f"Trade event is missing {e.args[0]}", field=e.args[0]
            ) from e

    def to_message(self) -> dict[str, Any]:
        """Serialize for the task queue."""
        return {
            "event_id": self.event_id,
            "originating_user_id": self.originating_user_id,
            "lots": str(self.lots),
            "notional_amount": str(self.notional_amount),
        }


@dataclass(frozen=True)
class PostedCommission:
    """One ledger entry written by a run."""

    ib_id: int
    level: int
    amount: Decimal
    rate: Decimal
    commission_type: str
    rate_source: str


@dataclass(frozen=True)
class SkippedBeneficiary:
    """Ancestor that received nothing, and why."""

    ib_id: int
    level: int
    reason: str


@dataclass
class CommissionResult:
    """Outcome of processing one trade event."""

    event_id: str
    posted: list[PostedCommission] = field(default_factory=list)
    skipped: list[SkippedBeneficiary] = field(default_factory=list)
    duplicates: int = 0
    disabled: bool = False
    success: bool = True

    @property
    def entry_count(self) -> int:
        return len(self.posted)

    @property
    def total_amount(self) -> Decimal:
        return sum((p.amount for p in self.posted), Decimal("0"))


class CommissionEngine(BaseService):
    """Multi-level commission posting."""

    @transaction
    async def process(
        self, event: TradeCloseEvent, settings: IBSettingsSnapshot
    ) -> CommissionResult:
        """
        Post commissions for a closed trade.

        Walks at most five hops up from the trader's direct IB. For the
        ancestor at distance L: non-ACTIVE ancestors are skipped and the walk
        continues past them; distances beyond the ancestor's plan max_levels
        are skipped; the rate is the ancestor's level override at L when
        defined, else its plan rate; non-positive amounts are skipped.

        Args:
            event: Closed trade
            settings: Program settings snapshot

        Returns:
            CommissionResult (success with no entries when the program is
            disabled or the trader has no referring IB)

        Raises:
            ValidationError: Malformed event
        """
        event = self._validate_event(event)
        result = CommissionResult(event_id=event.event_id)

        if not settings.is_enabled:
            self.logger.debug(
                "IB program disabled, commission skipped",
                extra={"event_id": event.event_id},
            )
            result.disabled = True
            return result

        attribution = await ReferredUserRepository(self.session).get_by_user_id(
            event.originating_user_id
        )
        if not attribution or attribution.referred_by_ib_id is None:
            return result

        walk = await self.sibling(ReferralGraph).upline(
            attribution.referred_by_ib_id, MAX_COMMISSION_DEPTH
        )
        if not walk:
            self.logger.warning(
                "Trader attributed to a missing IB partner",
                extra={
                    "event_id": event.event_id,
                    "user_id": event.originating_user_id,
                    "ib_id": attribution.referred_by_ib_id,
                },
            )
            return result

        partners = await IBPartnerRepository(self.session).get_many(
            [ib_id for _, ib_id in walk]
        )
        plan_repo = CommissionPlanRepository(self.session)
        plans = await plan_repo.get_many(
            [p.plan_id for p in partners.values() if p.plan_id is not None]
        )
        levels = await IBLevelRepository(self.session).get_many(
            [p.level_id for p in partners.values() if p.level_id is not None]
        )
        default_plan: CommissionPlan | None = None

        ledger = CommissionLedgerRepository(self.session)
        for distance, ib_id in walk:
            partner = partners.get(ib_id)
            if partner is None:
                break

            if not partner.is_active:
                result.skipped.append(
                    SkippedBeneficiary(ib_id, distance, "inactive")
                )
                continue

            plan = plans.get(partner.plan_id)
            if plan is None:
                if default_plan is None:
                    default_plan = await plan_repo.get_default()
                plan = default_plan
            if plan is None:
                result.skipped.append(SkippedBeneficiary(ib_id, distance, "no_plan"))
                continue

            level = levels.get(partner.level_id)
            if level is not None and not level.is_active:
                level = None

            rate = select_rate(plan, level, distance)
            if rate is None:
                result.skipped.append(
                    SkippedBeneficiary(ib_id, distance, "beyond_plan_depth")
                )
                continue

            amount = compute_amount(rate, event.lots, event.notional_amount)
            if amount <= 0:
                result.skipped.append(
                    SkippedBeneficiary(ib_id, distance, "zero_amount")
                )
                continue

            inserted = await ledger.insert_if_absent(
                source_event_id=event.event_id,
                beneficiary_ib_id=ib_id,
                originating_user_id=event.originating_user_id,
                level=distance,
                amount=amount,
                rate=rate.rate,
                commission_type=rate.commission_type,
                base_lots=event.lots,
                base_notional=event.notional_amount,
                entry_type=LedgerEntryType.COMMISSION,
            )
            if not inserted:
                result.duplicates += 1
                continue

            posted = PostedCommission(
                ib_id=ib_id,
                level=distance,
                amount=amount,
                rate=rate.rate,
                commission_type=rate.commission_type,
                rate_source=rate.source,
            )
            result.posted.append(posted)
            self.emit(
                IBEvent(
                    IBEventType.COMMISSION_POSTED,
                    ib_id,
                    {
                        "event_id": event.event_id,
                        "level": distance,
                        "amount": amount,
                        "user_id": event.originating_user_id,
                    },
                )
            )

        self.logger.info(
            "Commission processed",
            extra={
                "event_id": event.event_id,
                "user_id": event.originating_user_id,
                "posted": result.entry_count,
                "total_amount": str(result.total_amount),
                "skipped": len(result.skipped),
                "duplicates": result.duplicates,
            },
        )
        return result

    @transaction
    async def reverse_entry(
        self, entry_id: int, actor: str, reason: str
    ) -> CommissionLedgerEntry:
        """
        Post an offsetting entry for a commission.

        The original row is never touched. Reversing the same entry again
        returns the existing reversal.

        Args:
            entry_id: Ledger entry to reverse
            actor: Admin performing the correction
            reason: Why it is reversed

        Returns:
            The REVERSAL entry

        Raises:
            UnknownEntry: No such entry
            ValidationError: Entry is itself a reversal
        """
        actor = validate_actor(actor)
        reason = validate_name(reason, field="reason", max_length=500)

        ledger = CommissionLedgerRepository(self.session)
        entry = await ledger.get_by_id(entry_id)
        if not entry:
            raise UnknownEntry(
                f"Ledger entry {entry_id} not found", entry_id=entry_id
            )
        if entry.entry_type == LedgerEntryType.REVERSAL:
            raise ValidationError(
                "A reversal cannot be reversed", entry_id=entry_id
            )

        inserted = await ledger.insert_if_absent(
            source_event_id=f"{REVERSAL_PREFIX}{entry.id}",
            beneficiary_ib_id=entry.beneficiary_ib_id,
            originating_user_id=entry.originating_user_id,
            level=entry.level,
            amount=-entry.amount,
            rate=entry.rate,
            commission_type=entry.commission_type,
            base_lots=entry.base_lots,
            base_notional=entry.base_notional,
            entry_type=LedgerEntryType.REVERSAL,
            reverses_entry_id=entry.id,
            note=f"{actor}: {reason}",
        )
        reversal = await ledger.get_reversal_of(entry.id)

        if inserted:
            self.logger.info(
                "Commission reversed",
                extra={
                    "entry_id": entry.id,
                    "reversal_id": reversal.id,
                    "ib_id": entry.beneficiary_ib_id,
                    "amount": str(entry.amount),
                    "actor": actor,
                },
            )
        return reversal

    async def get_entries_for_event(
        self, event_id: str
    ) -> list[CommissionLedgerEntry]:
        """Get ledger entries of a trade event, nearest level first."""
        return await CommissionLedgerRepository(self.session).get_for_event(
            event_id
        )

    @staticmethod
    def _validate_event(event: TradeCloseEvent) -> TradeCloseEvent:
        if not isinstance(event.event_id, str) or not event.event_id.strip():
            raise ValidationError("event_id is required", field="event_id")
        if len(event.event_id) > 128:
            raise ValidationError("event_id is too long", field="event_id")
        if event.event_id.startswith(REVERSAL_PREFIX):
            raise ValidationError(
                f"event_id cannot start with {REVERSAL_PREFIX}", field="event_id"
            )
        user_id = event.originating_user_id
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise ValidationError(
                "originating_user_id must be an integer",
                field="originating_user_id",
            )
        return TradeCloseEvent(
            event_id=event.event_id,
            originating_user_id=user_id,
            lots=validate_decimal(event.lots, "lots"),
            notional_amount=validate_decimal(
                event.notional_amount, "notional_amount"
            ),
        )
