"""
IB settings repository.

Data access layer for the settings singleton and its audit trail.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ib_network.models.ib_settings import (
    GLOBAL_SETTINGS_KEY,
    IBSettingsAudit,
    IBSettingsRecord,
)
from ib_network.repositories.base import BaseRepository


class IBSettingsRepository(BaseRepository[IBSettingsRecord]):
    """IB settings repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize IB settings repository."""
        super().__init__(IBSettingsRecord, session)

    async def get_global(self) -> IBSettingsRecord | None:
        """Get the GLOBAL settings row."""
        return await self.get_by(settings_type=GLOBAL_SETTINGS_KEY)

    async def get_or_create_global(self) -> IBSettingsRecord:
        """
        Get the GLOBAL settings row, creating it with defaults if missing.

        Returns:
            Settings row
        """
        record = await self.get_global()
        if record is None:
            record = await self.create(settings_type=GLOBAL_SETTINGS_KEY)
        return record

    async def add_audit(self, actor: str, changes: dict) -> IBSettingsAudit:
        """Append a settings change to the audit trail."""
        audit = IBSettingsAudit(actor=actor, changes=changes)
        self.session.add(audit)
        await self.session.flush()
        return audit

    async def get_audit_trail(self) -> list[IBSettingsAudit]:
        """Get all settings changes, oldest first."""
        result = await self.session.execute(
            select(IBSettingsAudit).order_by(IBSettingsAudit.id)
        )
        return list(result.scalars().all())
