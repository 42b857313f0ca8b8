"""
IB wallet and withdrawal service.

A partner's balance is derived, never stored: net ledger amount minus every
withdrawal that was not rejected. The partner row is locked while a request
is checked so two concurrent requests cannot both spend the same balance.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from ib_network.models.enums import WithdrawalStatus
from ib_network.models.ib_withdrawal import IBWithdrawal
from ib_network.repositories.commission_ledger_repository import (
    CommissionLedgerRepository,
)
from ib_network.repositories.ib_partner_repository import IBPartnerRepository
from ib_network.repositories.ib_withdrawal_repository import (
    IBWithdrawalRepository,
)
from ib_network.services.base_service import BaseService, transaction
from ib_network.services.settings_service import IBSettingsSnapshot
from ib_network.utils.exceptions import (
    DisabledError,
    InsufficientBalance,
    InvalidTransition,
    StateError,
    UnknownIB,
    UnknownWithdrawal,
    ValidationError,
)
from ib_network.validators import validate_actor, validate_decimal, validate_name


AUTO_PROCESSED_BY = "auto"


@dataclass(frozen=True)
class WalletBalance:
    """IB wallet figures."""

    earned: Decimal
    withdrawn: Decimal
    pending: Decimal
    available: Decimal


class WithdrawalService(BaseService):
    """IB wallet balance and withdrawals."""

    async def get_balance(self, ib_id: int) -> WalletBalance:
        """
        Get a partner's wallet figures.

        Raises:
            UnknownIB: No such partner
        """
        if not await IBPartnerRepository(self.session).get_by_id(ib_id):
            raise UnknownIB(f"IB partner {ib_id} not found", ib_id=ib_id)
        return await self._balance(ib_id)

    async def list_withdrawals(self, ib_id: int) -> list[IBWithdrawal]:
        """Get a partner's withdrawals, oldest first."""
        return await IBWithdrawalRepository(self.session).find_by(ib_id=ib_id)

    async def list_pending(self) -> list[IBWithdrawal]:
        """Get withdrawals waiting for an admin decision."""
        return await IBWithdrawalRepository(self.session).get_pending()

    @transaction
    async def request_withdrawal(
        self, ib_id: int, amount: Any, settings: IBSettingsSnapshot
    ) -> IBWithdrawal:
        """
        Withdraw commission from the IB wallet.

        Completed at once unless settings require admin approval.

        Args:
            ib_id: Partner ID
            amount: Amount to withdraw
            settings: Program settings snapshot

        Returns:
            Withdrawal (PENDING or COMPLETED)

        Raises:
            DisabledError: Program disabled
            ValidationError: Amount malformed or below the minimum
            UnknownIB: No such partner
            StateError: Partner is not ACTIVE
            InsufficientBalance: Amount exceeds the available balance
        """
        if not settings.is_enabled:
            raise DisabledError("IB program is disabled")

        amount = validate_decimal(amount, "amount")
        if amount <= 0:
            raise ValidationError("amount must be positive", field="amount")
        if amount < settings.min_withdrawal_amount:
            raise ValidationError(
                f"Minimum withdrawal is {settings.min_withdrawal_amount}",
                field="amount",
                minimum=str(settings.min_withdrawal_amount),
            )

        partner = await IBPartnerRepository(self.session).get_fresh(
            ib_id, for_update=True
        )
        if not partner:
            raise UnknownIB(f"IB partner {ib_id} not found", ib_id=ib_id)
        if not partner.is_active:
            raise StateError(
                f"IB partner {ib_id} is {partner.status}",
                ib_id=ib_id,
                status=partner.status,
            )

        balance = await self._balance(ib_id)
        if amount > balance.available:
            raise InsufficientBalance(
                "Insufficient IB wallet balance",
                ib_id=ib_id,
                requested=str(amount),
                available=str(balance.available),
            )

        values: dict[str, Any] = {"ib_id": ib_id, "amount": amount}
        if settings.withdrawal_approval_required:
            values["status"] = WithdrawalStatus.PENDING
        else:
            values.update(
                status=WithdrawalStatus.COMPLETED,
                processed_by=AUTO_PROCESSED_BY,
                processed_at=datetime.now(UTC),
            )
        withdrawal = await IBWithdrawalRepository(self.session).create(**values)

        self.logger.info(
            "IB withdrawal requested",
            extra={
                "withdrawal_id": withdrawal.id,
                "ib_id": ib_id,
                "amount": str(amount),
                "status": withdrawal.status,
            },
        )
        return withdrawal

    @transaction
    async def approve_withdrawal(
        self, withdrawal_id: int, actor: str
    ) -> IBWithdrawal:
        """PENDING -> COMPLETED."""
        actor = validate_actor(actor)
        withdrawal = await self._get_pending(withdrawal_id)
        withdrawal.status = WithdrawalStatus.COMPLETED
        withdrawal.processed_by = actor
        withdrawal.processed_at = datetime.now(UTC)
        await self.session.flush()

        self.logger.info(
            "IB withdrawal approved",
            extra={"withdrawal_id": withdrawal_id, "actor": actor},
        )
        return withdrawal

    @transaction
    async def reject_withdrawal(
        self, withdrawal_id: int, actor: str, reason: str
    ) -> IBWithdrawal:
        """PENDING -> REJECTED. The amount returns to the available balance."""
        actor = validate_actor(actor)
        reason = validate_name(reason, field="reason", max_length=500)
        withdrawal = await self._get_pending(withdrawal_id)
        withdrawal.status = WithdrawalStatus.REJECTED
        withdrawal.processed_by = actor
        withdrawal.rejection_reason = reason
        withdrawal.processed_at = datetime.now(UTC)
        await self.session.flush()

        self.logger.info(
            "IB withdrawal rejected",
            extra={
                "withdrawal_id": withdrawal_id,
                "actor": actor,
                "reason": reason,
            },
        )
        return withdrawal

    async def _get_pending(self, withdrawal_id: int) -> IBWithdrawal:
        withdrawal = await IBWithdrawalRepository(self.session).get_fresh(
            withdrawal_id, for_update=True
        )
        if not withdrawal:
            raise UnknownWithdrawal(
                f"Withdrawal {withdrawal_id} not found",
                withdrawal_id=withdrawal_id,
            )
        if withdrawal.status != WithdrawalStatus.PENDING:
            raise InvalidTransition(
                f"Withdrawal {withdrawal_id} is already {withdrawal.status}",
                withdrawal_id=withdrawal_id,
                status=withdrawal.status,
            )
        return withdrawal

    async def _balance(self, ib_id: int) -> WalletBalance:
        earned = await CommissionLedgerRepository(
            self.session
        ).total_for_beneficiary(ib_id)
        withdrawals = IBWithdrawalRepository(self.session)
        reserved = await withdrawals.reserved_amount(ib_id)
        pending = await withdrawals.pending_amount(ib_id)
        return WalletBalance(
            earned=earned,
            withdrawn=reserved - pending,
            pending=pending,
            available=earned - reserved,
        )
