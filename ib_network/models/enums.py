"""
Enumerations shared by the partner network models.
"""

from enum import StrEnum


class IBStatus(StrEnum):
    """Partner lifecycle status."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"
    SUSPENDED = "SUSPENDED"
    REJECTED = "REJECTED"


class CommissionType(StrEnum):
    """How a commission rate is applied to a trade."""

    PER_LOT = "PER_LOT"  # rate is an amount per traded lot
    PERCENTAGE = "PERCENTAGE"  # rate is a percent of notional


class LedgerEntryType(StrEnum):
    """Kind of ledger posting."""

    COMMISSION = "COMMISSION"
    REVERSAL = "REVERSAL"


class WithdrawalStatus(StrEnum):
    """IB wallet withdrawal status."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
