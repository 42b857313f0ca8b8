"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from ib_network.models.base import Base
from ib_network.models.commission_ledger_entry import CommissionLedgerEntry
from ib_network.models.commission_plan import CommissionPlan
from ib_network.models.enums import (
    CommissionType,
    IBStatus,
    LedgerEntryType,
    WithdrawalStatus,
)
from ib_network.models.ib_level import IBLevel

# Core Models
from ib_network.models.ib_partner import IBPartner
from ib_network.models.ib_settings import IBSettingsAudit, IBSettingsRecord
from ib_network.models.ib_status_history import IBStatusHistory
from ib_network.models.ib_withdrawal import IBWithdrawal
from ib_network.models.referral_transfer_audit import ReferralTransferAudit
from ib_network.models.referred_user import ReferredUser

__all__ = [
    # Base
    "Base",
    # Enums
    "CommissionType",
    "IBStatus",
    "LedgerEntryType",
    "WithdrawalStatus",
    # Core Models
    "IBPartner",
    "ReferredUser",
    "CommissionPlan",
    "IBLevel",
    "CommissionLedgerEntry",
    "IBWithdrawal",
    # Audit Models
    "IBStatusHistory",
    "ReferralTransferAudit",
    "IBSettingsAudit",
    # System Models
    "IBSettingsRecord",
]
