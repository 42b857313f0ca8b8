"""
Commission rate selection and amount calculation.

Pure functions: the engine feeds them the beneficiary's plan and level.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ib_network.config.constants import MONEY_QUANTUM
from ib_network.models.commission_plan import CommissionPlan
from ib_network.models.enums import CommissionType
from ib_network.models.ib_level import IBLevel


@dataclass(frozen=True)
class CommissionRate:
    """Rate applied to one beneficiary at one distance."""

    rate: Decimal
    commission_type: CommissionType
    source: str  # "level" or "plan"


def select_rate(
    plan: CommissionPlan, level: IBLevel | None, distance: int
) -> CommissionRate | None:
    """
    Pick the rate for a beneficiary at a distance from the trader.

    The level's downline rate wins when it defines one for this distance,
    otherwise the plan's rate applies. Distances beyond the plan's
    max_levels are never paid.

    Args:
        plan: Beneficiary's commission plan
        level: Beneficiary's active level (None = no override)
        distance: Hops from the trader, 1 = direct IB

    Returns:
        Selected rate, None when the distance is outside the plan
    """
    if distance < 1 or distance > plan.max_levels:
        return None

    if level is not None:
        override = level.downline_rate(distance)
        if override is not None:
            return CommissionRate(
                rate=Decimal(override),
                commission_type=CommissionType(level.commission_type),
                source="level",
            )

    return CommissionRate(
        rate=Decimal(plan.rate_for(distance)),
        commission_type=CommissionType(plan.commission_type),
        source="plan",
    )


def compute_amount(
    rate: CommissionRate, lots: Decimal, notional_amount: Decimal
) -> Decimal:
    """
    Compute a commission amount.

    PER_LOT pays rate per lot traded, PERCENTAGE pays rate percent of the
    notional amount. Result is rounded half-up to 8 decimal places.

    Examples:
        >>> compute_amount(CommissionRate(Decimal("5"), CommissionType.PER_LOT, "plan"),
        ...                Decimal("10"), Decimal("0"))
        Decimal('50.00000000')
    """
    if rate.commission_type == CommissionType.PERCENTAGE:
        amount = notional_amount * rate.rate / Decimal(100)
    else:
        amount = lots * rate.rate
    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
