"""
IB program settings service.

The settings singleton is read once per operation into an immutable
IBSettingsSnapshot and passed explicitly to the services that need it.
Changes go through update(), which writes an audit record.
"""

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any

from ib_network.models.ib_settings import IBSettingsAudit, IBSettingsRecord
from ib_network.repositories.ib_settings_repository import IBSettingsRepository
from ib_network.services.base_service import BaseService, transaction
from ib_network.utils.exceptions import ValidationError


@dataclass(frozen=True)
class IBSettingsSnapshot:
    """Immutable view of the program settings for one invocation."""

    is_enabled: bool = True
    allow_new_applications: bool = True
    auto_approve: bool = False
    kyc_required: bool = True
    withdrawal_approval_required: bool = True
    min_withdrawal_amount: Decimal = Decimal("50")

    @classmethod
    def from_record(cls, record: IBSettingsRecord) -> "IBSettingsSnapshot":
        """Build snapshot from the persisted row."""
        return cls(
            is_enabled=record.is_enabled,
            allow_new_applications=record.allow_new_applications,
            auto_approve=record.auto_approve,
            kyc_required=record.kyc_required,
            withdrawal_approval_required=record.withdrawal_approval_required,
            min_withdrawal_amount=Decimal(record.min_withdrawal_amount),
        )

    @property
    def accepts_applications(self) -> bool:
        """Whether new partner applications may be filed."""
        return self.is_enabled and self.allow_new_applications


SETTING_FIELDS = frozenset(f.name for f in fields(IBSettingsSnapshot))
BOOLEAN_FIELDS = SETTING_FIELDS - {"min_withdrawal_amount"}


class IBSettingsService(BaseService):
    """Loads and changes the program settings singleton."""

    @transaction
    async def load_snapshot(self) -> IBSettingsSnapshot:
        """
        Read the current settings.

        Creates the GLOBAL row with defaults on first use.

        Returns:
            Immutable snapshot
        """
        repo = IBSettingsRepository(self.session)
        record = await repo.get_or_create_global()
        return IBSettingsSnapshot.from_record(record)

    @transaction
    async def update(self, actor: str, **changes: Any) -> IBSettingsSnapshot:
        """
        Change program settings (audited admin call).

        Args:
            actor: Admin performing the change
            **changes: Setting name to new value

        Returns:
            Snapshot after the change

        Raises:
            ValidationError: Unknown setting or invalid value
        """
        if not actor:
            raise ValidationError("Actor is required for settings changes")

        unknown = set(changes) - SETTING_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown settings: {', '.join(sorted(unknown))}",
                fields=sorted(unknown),
            )

        for name in BOOLEAN_FIELDS & set(changes):
            if not isinstance(changes[name], bool):
                raise ValidationError(f"{name} must be a boolean", field=name)

        if "min_withdrawal_amount" in changes:
            try:
                amount = Decimal(str(changes["min_withdrawal_amount"]))
            except ArithmeticError as e:
                raise ValidationError(
                    "min_withdrawal_amount must be a number"
                ) from e
            if amount < 0:
                raise ValidationError("min_withdrawal_amount must be >= 0")
            changes["min_withdrawal_amount"] = amount

        repo = IBSettingsRepository(self.session)
        record = await repo.get_or_create_global()

        diff: dict[str, dict[str, Any]] = {}
        for name, value in changes.items():
            old = getattr(record, name)
            if old != value:
                diff[name] = {"old": str(old), "new": str(value)}
                setattr(record, name, value)

        if diff:
            await self.session.flush()
            await repo.add_audit(actor=actor, changes=diff)
            self.logger.info(
                "IB settings changed",
                extra={"actor": actor, "changes": diff},
            )

        return IBSettingsSnapshot.from_record(record)

    async def get_audit_trail(self) -> list[IBSettingsAudit]:
        """Get all settings changes, oldest first."""
        return await IBSettingsRepository(self.session).get_audit_trail()
