"""IB wallet package."""

from ib_network.services.wallet.withdrawal_service import (
    WalletBalance,
    WithdrawalService,
)


__all__ = ["WalletBalance", "WithdrawalService"]
