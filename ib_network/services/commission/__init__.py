"""
Commission package.

- calculator: rate selection and amount rounding
- engine: trade events to ledger entries, reversals
"""

from ib_network.services.commission.calculator import (
    CommissionRate,
    compute_amount,
    select_rate,
)
from ib_network.services.commission.engine import (
    CommissionEngine,
    CommissionResult,
    PostedCommission,
    SkippedBeneficiary,
    TradeCloseEvent,
)


__all__ = [
    "CommissionEngine",
    "CommissionRate",
    "CommissionResult",
    "PostedCommission",
    "SkippedBeneficiary",
    "TradeCloseEvent",
    "compute_amount",
    "select_rate",
]
