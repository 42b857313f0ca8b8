"""
Services.

Business logic layer.
"""

# Base Service Infrastructure
from ib_network.services.base_service import BaseService, transaction

# Core Services
from ib_network.services.commission import (
    CommissionEngine,
    CommissionResult,
    TradeCloseEvent,
)
from ib_network.services.levels import LevelService
from ib_network.services.lifecycle import (
    IBLifecycleService,
    KycProvider,
    StaticKycProvider,
)

# Notifications
from ib_network.services.notification import (
    IBEvent,
    IBEventType,
    NotificationDispatcher,
    NotificationHook,
    RecordingHook,
)
from ib_network.services.plans import PlanService
from ib_network.services.referral import (
    ReferralGraph,
    ReferralTransferService,
    TransferResult,
)

# Settings, Wallet & Statistics
from ib_network.services.settings_service import (
    IBSettingsService,
    IBSettingsSnapshot,
)
from ib_network.services.statistics_service import IBStatisticsService
from ib_network.services.wallet import WalletBalance, WithdrawalService


__all__ = [
    # Base
    "BaseService",
    "transaction",
    # Core
    "CommissionEngine",
    "CommissionResult",
    "TradeCloseEvent",
    "IBLifecycleService",
    "KycProvider",
    "StaticKycProvider",
    "LevelService",
    "PlanService",
    "ReferralGraph",
    "ReferralTransferService",
    "TransferResult",
    # Notifications
    "IBEvent",
    "IBEventType",
    "NotificationDispatcher",
    "NotificationHook",
    "RecordingHook",
    # Settings, Wallet & Statistics
    "IBSettingsService",
    "IBSettingsSnapshot",
    "IBStatisticsService",
    "WalletBalance",
    "WithdrawalService",
]
