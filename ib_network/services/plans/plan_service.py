"""
Commission plan service.

Named commission schedules. Exactly one plan is the default at all times:
the first plan created becomes default, making another plan default clears
the flag elsewhere in the same transaction, and the current default can
neither be un-flagged nor deleted.
"""

from decimal import Decimal
from typing import Any

from ib_network.config.constants import (
    COMMISSION_LEVELS,
    DEFAULT_PLAN_MAX_LEVELS,
    DEFAULT_PLAN_NAME,
    DEFAULT_PLAN_RATES,
)
from ib_network.models.commission_plan import CommissionPlan
from ib_network.models.enums import CommissionType
from ib_network.models.ib_partner import IBPartner
from ib_network.repositories.commission_plan_repository import (
    CommissionPlanRepository,
)
from ib_network.repositories.ib_partner_repository import IBPartnerRepository
from ib_network.services.base_service import BaseService, transaction
from ib_network.utils.exceptions import (
    DefaultPlanRequired,
    DuplicateName,
    ResourceInUse,
    UnknownIB,
    UnknownPlan,
    ValidationError,
)
from ib_network.validators import (
    validate_commission_type,
    validate_level_rates,
    validate_max_levels,
    validate_name,
)


PLAN_FIELDS = frozenset(
    {
        "name",
        "description",
        "commission_type",
        "max_levels",
        "level_rates",
        "is_default",
        "is_active",
    }
)


class PlanService(BaseService):
    """Commission plan registry."""

    async def list_plans(self, active_only: bool = False) -> list[CommissionPlan]:
        """Get plans, newest first."""
        return await CommissionPlanRepository(self.session).get_ordered(
            active_only=active_only
        )

    async def get_plan(self, plan_id: int) -> CommissionPlan:
        """
        Get plan by ID.

        Raises:
            UnknownPlan: No such plan
        """
        plan = await CommissionPlanRepository(self.session).get_by_id(plan_id)
        if not plan:
            raise UnknownPlan(f"Plan {plan_id} not found", plan_id=plan_id)
        return plan

    async def get_default(self) -> CommissionPlan | None:
        """Get the default plan (None only on an empty registry)."""
        return await CommissionPlanRepository(self.session).get_default()

    @transaction
    async def create_plan(
        self,
        name: str,
        level_rates: dict[Any, Any],
        commission_type: Any = CommissionType.PER_LOT,
        max_levels: int = DEFAULT_PLAN_MAX_LEVELS,
        description: str | None = None,
        is_default: bool = False,
        is_active: bool = True,
    ) -> CommissionPlan:
        """
        Create a commission plan.

        Args:
            name: Unique plan name
            level_rates: Rate by distance, keys 1-5 or "level1".."level5"
            commission_type: PER_LOT or PERCENTAGE
            max_levels: Deepest distance paid (1-5)
            description: Free text
            is_default: Make this the default plan
            is_active: Whether partners can be bound to it

        Returns:
            Created plan

        Raises:
            ValidationError: Malformed input
            DuplicateName: Name already used
        """
        values = self._validate_plan_values(
            {
                "name": name,
                "description": description,
                "commission_type": commission_type,
                "max_levels": max_levels,
                "level_rates": level_rates,
                "is_default": is_default,
                "is_active": is_active,
            }
        )
        return await self._create(values)

    @transaction
    async def update_plan(self, plan_id: int, **changes: Any) -> CommissionPlan:
        """
        Change a plan.

        Args:
            plan_id: Plan ID
            **changes: Any of name, description, commission_type, max_levels,
                level_rates, is_default, is_active

        Returns:
            Updated plan

        Raises:
            UnknownPlan: No such plan
            ValidationError: Unknown field or malformed value
            DuplicateName: Name already used
            DefaultPlanRequired: Change would leave no default plan
        """
        unknown = set(changes) - PLAN_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown plan fields: {', '.join(sorted(unknown))}",
                fields=sorted(unknown),
            )

        repo = CommissionPlanRepository(self.session)
        plan = await self.get_plan(plan_id)
        values = self._validate_plan_values(changes, partial=True)

        if "name" in values and values["name"] != plan.name:
            existing = await repo.get_by_name(values["name"])
            if existing and existing.id != plan.id:
                raise DuplicateName(
                    f"Plan '{values['name']}' already exists",
                    name=values["name"],
                )

        if plan.is_default:
            if values.get("is_default") is False:
                raise DefaultPlanRequired(
                    "Make another plan default instead of un-flagging this one",
                    plan_id=plan.id,
                )
            if values.get("is_active") is False:
                raise DefaultPlanRequired(
                    "The default plan cannot be deactivated", plan_id=plan.id
                )
        elif values.get("is_default") and values.get("is_active", plan.is_active) is False:
            raise ValidationError("An inactive plan cannot be the default")

        make_default = values.pop("is_default", None) is True and not plan.is_default

        for column, value in self._to_columns(values).items():
            setattr(plan, column, value)
        await self.session.flush()

        if make_default:
            await repo.clear_default(except_id=plan.id)
            plan.is_default = True
            await self.session.flush()

        self.logger.info(
            "Commission plan updated",
            extra={
                "plan_id": plan.id,
                "fields": sorted(changes),
                "is_default": plan.is_default,
            },
        )
        return plan

    @transaction
    async def delete_plan(self, plan_id: int) -> None:
        """
        Delete a plan.

        Raises:
            UnknownPlan: No such plan
            DefaultPlanRequired: Plan is the default
            ResourceInUse: Partners are bound to the plan
        """
        plan = await self.get_plan(plan_id)
        if plan.is_default:
            raise DefaultPlanRequired(
                "The default plan cannot be deleted", plan_id=plan_id
            )

        in_use = await IBPartnerRepository(self.session).count_on_plan(plan_id)
        if in_use:
            raise ResourceInUse(
                f"Plan '{plan.name}' is bound to {in_use} partners",
                plan_id=plan_id,
                partners=in_use,
            )

        await CommissionPlanRepository(self.session).delete(plan_id)
        self.logger.info(
            "Commission plan deleted",
            extra={"plan_id": plan_id, "plan_name": plan.name},
        )

    @transaction
    async def ensure_default_plan(self) -> CommissionPlan:
        """
        Get the default plan, creating the built-in one if the registry has none.

        Returns:
            Default plan
        """
        repo = CommissionPlanRepository(self.session)
        plan = await repo.get_default()
        if plan:
            return plan

        existing = await repo.get_by_name(DEFAULT_PLAN_NAME)
        if existing:
            existing.is_active = True
            existing.is_default = True
            await self.session.flush()
            return existing

        return await self._create(
            {
                "name": DEFAULT_PLAN_NAME,
                "description": "Built-in default commission schedule",
                "commission_type": CommissionType.PER_LOT,
                "max_levels": DEFAULT_PLAN_MAX_LEVELS,
                "level_rates": dict(DEFAULT_PLAN_RATES),
                "is_default": True,
                "is_active": True,
            }
        )

    @transaction
    async def change_partner_plan(self, ib_id: int, plan_id: int) -> IBPartner:
        """
        Bind a partner to another plan.

        Raises:
            UnknownIB: No such partner
            UnknownPlan: No such plan
            ValidationError: Plan is inactive
        """
        plan = await self.get_plan(plan_id)
        if not plan.is_active:
            raise ValidationError(
                f"Plan '{plan.name}' is inactive", plan_id=plan_id
            )

        partner_repo = IBPartnerRepository(self.session)
        partner = await partner_repo.get_fresh(ib_id)
        if not partner:
            raise UnknownIB(f"IB partner {ib_id} not found", ib_id=ib_id)

        previous_plan_id = partner.plan_id
        await partner_repo.update_versioned(partner, plan_id=plan.id)

        self.logger.info(
            "IB partner plan changed",
            extra={
                "ib_id": ib_id,
                "from_plan_id": previous_plan_id,
                "to_plan_id": plan.id,
            },
        )
        return partner

    # Helpers below run inside the caller's transaction and never commit

    async def _resolve_plan_for_binding(
        self, plan_id: int | None
    ) -> CommissionPlan:
        """
        Plan to bind at approval: the given one, else the default.

        Raises:
            UnknownPlan: Unknown id, or no default plan configured
            ValidationError: Plan is inactive
        """
        if plan_id is None:
            plan = await CommissionPlanRepository(self.session).get_default()
            if not plan:
                raise UnknownPlan("No default commission plan configured")
            return plan

        plan = await self.get_plan(plan_id)
        if not plan.is_active:
            raise ValidationError(
                f"Plan '{plan.name}' is inactive", plan_id=plan_id
            )
        return plan

    async def _create(self, values: dict[str, Any]) -> CommissionPlan:
        repo = CommissionPlanRepository(self.session)
        if await repo.get_by_name(values["name"]):
            raise DuplicateName(
                f"Plan '{values['name']}' already exists", name=values["name"]
            )

        # First plan becomes default
        current_default = await repo.get_default()
        is_default = values.pop("is_default", False) or current_default is None
        if is_default and not values.get("is_active", True):
            raise ValidationError("An inactive plan cannot be the default")
        if is_default and current_default is not None:
            await repo.clear_default()

        plan = await repo.create(is_default=is_default, **self._to_columns(values))

        self.logger.info(
            "Commission plan created",
            extra={
                "plan_id": plan.id,
                "plan_name": plan.name,
                "commission_type": plan.commission_type,
                "max_levels": plan.max_levels,
                "is_default": plan.is_default,
            },
        )
        return plan

    def _validate_plan_values(
        self, raw: dict[str, Any], partial: bool = False
    ) -> dict[str, Any]:
        values: dict[str, Any] = {}
        if "name" in raw:
            values["name"] = validate_name(raw["name"])
        if "description" in raw:
            description = raw["description"]
            if description is not None and not isinstance(description, str):
                raise ValidationError(
                    "description must be text", field="description"
                )
            values["description"] = description
        if "commission_type" in raw:
            values["commission_type"] = validate_commission_type(
                raw["commission_type"]
            )
        if "max_levels" in raw:
            values["max_levels"] = validate_max_levels(raw["max_levels"])
        if "level_rates" in raw:
            rates = validate_level_rates(raw["level_rates"], "level_rates")
            undefined = sorted(d for d, rate in rates.items() if rate is None)
            if undefined:
                raise ValidationError(
                    "Plan rates must be numbers", field="level_rates",
                    levels=undefined,
                )
            values["level_rates"] = rates
        for flag in ("is_default", "is_active"):
            if flag in raw:
                if not isinstance(raw[flag], bool):
                    raise ValidationError(f"{flag} must be a boolean", field=flag)
                values[flag] = raw[flag]

        if not partial and "level_rates" not in values:
            raise ValidationError("level_rates is required", field="level_rates")
        return values

    @staticmethod
    def _to_columns(values: dict[str, Any]) -> dict[str, Any]:
        columns = {k: v for k, v in values.items() if k != "level_rates"}
        rates: dict[int, Decimal] = values.get("level_rates", {})
        for distance in COMMISSION_LEVELS:
            if distance in rates:
                columns[f"level{distance}_rate"] = rates[distance]
        return columns
