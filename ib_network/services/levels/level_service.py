"""
IB level service.

Manages the level ladder and the level assigned to each partner. Promotion
is sticky: a growing referral count moves a partner up (when auto-upgrade
is on), a shrinking one never moves it down. Demotion only happens through
an explicit admin recompute.
"""

from decimal import Decimal
from typing import Any

from ib_network.config.constants import COMMISSION_LEVELS, DEFAULT_LEVELS
from ib_network.models.enums import CommissionType
from ib_network.models.ib_level import IBLevel
from ib_network.models.ib_partner import IBPartner
from ib_network.repositories.ib_level_repository import IBLevelRepository
from ib_network.repositories.ib_partner_repository import IBPartnerRepository
from ib_network.repositories.referred_user_repository import (
    ReferredUserRepository,
)
from ib_network.services.base_service import BaseService, transaction
from ib_network.services.levels.ladder import (
    LevelProgress,
    check_ladder_position,
    compute_progress,
    resolve_level,
)
from ib_network.services.notification import IBEvent, IBEventType
from ib_network.utils.exceptions import (
    DuplicateName,
    ResourceInUse,
    UnknownIB,
    UnknownLevel,
    ValidationError,
)
from ib_network.validators import (
    validate_commission_type,
    validate_decimal,
    validate_level_rates,
    validate_name,
    validate_non_negative_int,
)


LEVEL_FIELDS = frozenset(
    {
        "name",
        "order",
        "referral_target",
        "commission_rate",
        "commission_type",
        "downline_rates",
        "is_active",
    }
)


class LevelService(BaseService):
    """Level ladder administration and partner level assignment."""

    async def list_levels(self, active_only: bool = False) -> list[IBLevel]:
        """Get levels in ladder order."""
        return await IBLevelRepository(self.session).get_ordered_levels(
            active_only=active_only
        )

    async def get_level(self, level_id: int) -> IBLevel:
        """
        Get level by ID.

        Raises:
            UnknownLevel: No such level
        """
        level = await IBLevelRepository(self.session).get_by_id(level_id)
        if not level:
            raise UnknownLevel(f"Level {level_id} not found", level_id=level_id)
        return level

    async def resolve(self, referral_count: int) -> IBLevel | None:
        """Resolve a referral count against the current active ladder."""
        levels = await IBLevelRepository(self.session).get_ordered_levels()
        return resolve_level(levels, referral_count)

    @transaction
    async def create_level(
        self,
        name: str,
        order: int,
        referral_target: int,
        commission_rate: Any = Decimal("0"),
        commission_type: Any = CommissionType.PER_LOT,
        downline_rates: dict[Any, Any] | None = None,
        is_active: bool = True,
        override: bool = False,
    ) -> IBLevel:
        """
        Add a level to the ladder.

        Args:
            name: Unique level name
            order: Ladder position
            referral_target: Direct referrals needed
            commission_rate: Headline rate of the level
            commission_type: PER_LOT or PERCENTAGE
            downline_rates: Override rates by distance (1-5)
            is_active: Whether the level takes part in resolution
            override: Accept a target out of order with its neighbours

        Returns:
            Created level

        Raises:
            ValidationError: Malformed input
            DuplicateName: Name already used
            DuplicateOrder: Order taken by another active level
            NonMonotonicTarget: Target breaks the ladder
        """
        values = self._validate_level_values(
            {
                "name": name,
                "order": order,
                "referral_target": referral_target,
                "commission_rate": commission_rate,
                "commission_type": commission_type,
                "downline_rates": downline_rates,
                "is_active": is_active,
            }
        )

        repo = IBLevelRepository(self.session)
        if await repo.get_by_name(values["name"]):
            raise DuplicateName(
                f"Level '{values['name']}' already exists", name=values["name"]
            )

        if values["is_active"]:
            check_ladder_position(
                await repo.get_ordered_levels(),
                values["order"],
                values["referral_target"],
                override=override,
            )

        level = await repo.create(**self._to_columns(values))

        self.logger.info(
            "IB level created",
            extra={
                "level_id": level.id,
                "level_name": level.name,
                "order": level.order,
                "referral_target": level.referral_target,
            },
        )
        return level

    @transaction
    async def update_level(
        self, level_id: int, override: bool = False, **changes: Any
    ) -> IBLevel:
        """
        Change a level.

        Args:
            level_id: Level ID
            override: Accept a target out of order with its neighbours
            **changes: Any of name, order, referral_target, commission_rate,
                commission_type, downline_rates, is_active

        Returns:
            Updated level

        Raises:
            UnknownLevel: No such level
            ValidationError: Unknown field or malformed value
            DuplicateName / DuplicateOrder / NonMonotonicTarget
        """
        unknown = set(changes) - LEVEL_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown level fields: {', '.join(sorted(unknown))}",
                fields=sorted(unknown),
            )

        repo = IBLevelRepository(self.session)
        level = await repo.get_by_id(level_id)
        if not level:
            raise UnknownLevel(f"Level {level_id} not found", level_id=level_id)

        values = self._validate_level_values(changes, partial=True)

        if "name" in values and values["name"] != level.name:
            existing = await repo.get_by_name(values["name"])
            if existing and existing.id != level.id:
                raise DuplicateName(
                    f"Level '{values['name']}' already exists",
                    name=values["name"],
                )

        is_active = values.get("is_active", level.is_active)
        if is_active:
            check_ladder_position(
                await repo.get_ordered_levels(),
                values.get("order", level.order),
                values.get("referral_target", level.referral_target),
                exclude_id=level.id,
                override=override,
            )

        for column, value in self._to_columns(values).items():
            setattr(level, column, value)
        await self.session.flush()

        self.logger.info(
            "IB level updated",
            extra={"level_id": level.id, "fields": sorted(values)},
        )
        return level

    @transaction
    async def delete_level(self, level_id: int) -> None:
        """
        Delete a level nobody sits on.

        Raises:
            UnknownLevel: No such level
            ResourceInUse: Partners are assigned to the level
        """
        repo = IBLevelRepository(self.session)
        level = await repo.get_by_id(level_id)
        if not level:
            raise UnknownLevel(f"Level {level_id} not found", level_id=level_id)

        in_use = await IBPartnerRepository(self.session).count_on_level(level_id)
        if in_use:
            raise ResourceInUse(
                f"Level '{level.name}' is assigned to {in_use} partners",
                level_id=level_id,
                partners=in_use,
            )

        await repo.delete(level_id)
        self.logger.info(
            "IB level deleted",
            extra={"level_id": level_id, "level_name": level.name},
        )

    @transaction
    async def initialize_default_levels(self) -> list[IBLevel]:
        """
        Create the default ladder (Standard to Platinum) on an empty table.

        Returns:
            Created levels; empty when levels already exist
        """
        repo = IBLevelRepository(self.session)
        if await repo.count():
            return []

        created = []
        for name, order, target, rate, downline in DEFAULT_LEVELS:
            created.append(
                await repo.create(
                    name=name,
                    order=order,
                    referral_target=target,
                    commission_rate=rate,
                    commission_type=CommissionType.PER_LOT,
                    **{
                        f"downline{distance}_rate": downline[distance - 1]
                        for distance in COMMISSION_LEVELS
                    },
                )
            )

        self.logger.info(
            "Default IB levels initialized", extra={"count": len(created)}
        )
        return created

    @transaction
    async def recompute_level(
        self, ib_id: int, allow_demotion: bool = True
    ) -> IBPartner:
        """
        Re-evaluate a partner's level from its actual referral count.

        Args:
            ib_id: Partner ID
            allow_demotion: Let the partner drop to a lower level

        Returns:
            Updated partner

        Raises:
            UnknownIB: No such partner
        """
        partner = await self._get_partner(ib_id)
        await self._sync_referral_count(partner)

        target = await self.resolve(partner.referral_count)
        current = await self._current_level(partner)

        if target is None and current is None:
            return partner
        if target is not None and current is not None:
            if target.id == current.id:
                return partner
            if target.order < current.order and not allow_demotion:
                return partner
        if target is None and not allow_demotion:
            return partner

        await self._assign_level(partner, target, IBEventType.LEVEL_CHANGED)
        return partner

    @transaction
    async def set_partner_level(
        self, ib_id: int, level_id: int | None
    ) -> IBPartner:
        """
        Assign a level manually (admin).

        Args:
            ib_id: Partner ID
            level_id: Level ID, None to clear

        Raises:
            UnknownIB: No such partner
            UnknownLevel: No such level
        """
        partner = await self._get_partner(ib_id)
        level = await self.get_level(level_id) if level_id is not None else None
        if partner.level_id != level_id:
            await self._assign_level(partner, level, IBEventType.LEVEL_CHANGED)
        return partner

    @transaction
    async def set_auto_upgrade(self, ib_id: int, enabled: bool) -> IBPartner:
        """
        Toggle automatic promotion for a partner.

        Turning it on applies any promotion the partner already qualifies for.
        """
        if not isinstance(enabled, bool):
            raise ValidationError("enabled must be a boolean", field="enabled")

        partner = await self._get_partner(ib_id)
        await IBPartnerRepository(self.session).update_versioned(
            partner, auto_upgrade_enabled=enabled
        )
        if enabled:
            await self._promote_if_qualified(partner)
        return partner

    async def progress(self, ib_id: int) -> LevelProgress:
        """
        Get a partner's progress towards the next level.

        Raises:
            UnknownIB: No such partner
        """
        partner = await self._get_partner(ib_id)
        levels = await IBLevelRepository(self.session).get_ordered_levels()
        return compute_progress(
            levels, await self._current_level(partner), partner.referral_count
        )

    # Helpers below run inside the caller's transaction and never commit

    async def _get_partner(self, ib_id: int) -> IBPartner:
        partner = await IBPartnerRepository(self.session).get_fresh(ib_id)
        if not partner:
            raise UnknownIB(f"IB partner {ib_id} not found", ib_id=ib_id)
        return partner

    async def _current_level(self, partner: IBPartner) -> IBLevel | None:
        if partner.level_id is None:
            return None
        return await IBLevelRepository(self.session).get_by_id(partner.level_id)

    async def _sync_referral_count(self, partner: IBPartner) -> int:
        """Recount direct referrals and store the result (CAS)."""
        count = await ReferredUserRepository(self.session).count_attributed_to(
            partner.id
        )
        if count != partner.referral_count:
            await IBPartnerRepository(self.session).update_versioned(
                partner, referral_count=count
            )
        return count

    async def _promote_if_qualified(self, partner: IBPartner) -> IBLevel | None:
        """
        Move a partner up the ladder when its referral count allows it.

        Never demotes.

        Returns:
            New level, or None when nothing changed
        """
        if not partner.auto_upgrade_enabled:
            return None

        target = await self.resolve(partner.referral_count)
        if target is None or target.id == partner.level_id:
            return None

        current = await self._current_level(partner)
        if current is not None and target.order <= current.order:
            return None

        await self._assign_level(partner, target, IBEventType.LEVEL_PROMOTED)
        return target

    async def _assign_level(
        self,
        partner: IBPartner,
        level: IBLevel | None,
        event_type: IBEventType,
    ) -> None:
        previous_level_id = partner.level_id
        await IBPartnerRepository(self.session).update_versioned(
            partner, level_id=level.id if level else None
        )

        self.logger.info(
            "IB level assigned",
            extra={
                "ib_id": partner.id,
                "from_level_id": previous_level_id,
                "to_level_id": partner.level_id,
                "referral_count": partner.referral_count,
            },
        )
        self.emit(
            IBEvent(
                event_type,
                partner.id,
                {
                    "from_level_id": previous_level_id,
                    "to_level_id": partner.level_id,
                    "level_name": level.name if level else None,
                },
            )
        )

    def _validate_level_values(
        self, raw: dict[str, Any], partial: bool = False
    ) -> dict[str, Any]:
        values: dict[str, Any] = {}
        if "name" in raw:
            values["name"] = validate_name(raw["name"], max_length=50)
        for field in ("order", "referral_target"):
            if field in raw:
                values[field] = validate_non_negative_int(raw[field], field)
        if "commission_rate" in raw:
            values["commission_rate"] = validate_decimal(
                raw["commission_rate"], "commission_rate"
            )
        if "commission_type" in raw:
            values["commission_type"] = validate_commission_type(
                raw["commission_type"]
            )
        if "downline_rates" in raw:
            values["downline_rates"] = validate_level_rates(
                raw["downline_rates"], "downline_rates"
            )
        if "is_active" in raw:
            if not isinstance(raw["is_active"], bool):
                raise ValidationError(
                    "is_active must be a boolean", field="is_active"
                )
            values["is_active"] = raw["is_active"]

        if not partial:
            missing = {"name", "order", "referral_target"} - set(values)
            if missing:
                raise ValidationError(
                    f"Missing level fields: {', '.join(sorted(missing))}"
                )
        return values

    @staticmethod
    def _to_columns(values: dict[str, Any]) -> dict[str, Any]:
        columns = {k: v for k, v in values.items() if k != "downline_rates"}
        for distance, rate in values.get("downline_rates", {}).items():
            columns[f"downline{distance}_rate"] = rate
        return columns
