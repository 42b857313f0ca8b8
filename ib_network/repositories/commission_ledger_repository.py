"""
Commission ledger repository.

Append-only data access for CommissionLedgerEntry. There is deliberately no
update path: corrections are posted as new entries.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ib_network.models.commission_ledger_entry import CommissionLedgerEntry
from ib_network.repositories.base import BaseRepository


class CommissionLedgerRepository(BaseRepository[CommissionLedgerEntry]):
    """Commission ledger repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission ledger repository."""
        super().__init__(CommissionLedgerEntry, session)

    def _insert(self):
        """Dialect-specific INSERT supporting ON CONFLICT DO NOTHING."""
        dialect = self.session.bind.dialect.name
        table = CommissionLedgerEntry.__table__
        if dialect == "postgresql":
            return postgresql.insert(table)
        if dialect == "sqlite":
            return sqlite.insert(table)
        raise NotImplementedError(f"Unsupported database dialect: {dialect}")

    async def insert_if_absent(self, **data: Any) -> bool:
        """
        Insert an entry unless (source_event_id, beneficiary_ib_id) exists.

        The unique constraint decides, so concurrent workers processing the
        same event cannot both post.

        Args:
            **data: Column values

        Returns:
            True if a row was inserted, False if it already existed
        """
        stmt = (
            self._insert()
            .values(**data)
            .on_conflict_do_nothing(
                index_elements=["source_event_id", "beneficiary_ib_id"]
            )
            .returning(CommissionLedgerEntry.__table__.c.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def get_for_event(
        self, source_event_id: str
    ) -> list[CommissionLedgerEntry]:
        """Get entries posted for a trade event, nearest level first."""
        stmt = (
            select(CommissionLedgerEntry)
            .where(CommissionLedgerEntry.source_event_id == source_event_id)
            .order_by(CommissionLedgerEntry.level, CommissionLedgerEntry.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_for_beneficiary(
        self, ib_id: int, limit: int | None = None, offset: int | None = None
    ) -> list[CommissionLedgerEntry]:
        """Get entries credited to a partner."""
        return await self.find_all(
            limit=limit, offset=offset, beneficiary_ib_id=ib_id
        )

    async def get_reversal_of(
        self, entry_id: int
    ) -> CommissionLedgerEntry | None:
        """Get the reversal posted against an entry, if any."""
        return await self.get_by(reverses_entry_id=entry_id)

    async def total_volume(self) -> Decimal:
        """Net sum of all ledger amounts (reversals included)."""
        stmt = select(
            func.coalesce(func.sum(CommissionLedgerEntry.amount), Decimal("0"))
        )
        result = await self.session.execute(stmt)
        return Decimal(result.scalar() or 0)

    async def total_for_beneficiary(self, ib_id: int) -> Decimal:
        """Net commission credited to a partner."""
        stmt = select(
            func.coalesce(func.sum(CommissionLedgerEntry.amount), Decimal("0"))
        ).where(CommissionLedgerEntry.beneficiary_ib_id == ib_id)
        result = await self.session.execute(stmt)
        return Decimal(result.scalar() or 0)

    async def level_breakdown(
        self, ib_id: int
    ) -> dict[int, dict[str, int | Decimal]]:
        """
        Get commission statistics per level in a single query.

        Args:
            ib_id: Beneficiary partner ID

        Returns:
            Dict mapping level to {"count": n, "total": Decimal}
        """
        stmt = (
            select(
                CommissionLedgerEntry.level,
                func.count(CommissionLedgerEntry.id).label("count"),
                func.coalesce(
                    func.sum(CommissionLedgerEntry.amount), Decimal("0")
                ).label("total"),
            )
            .where(CommissionLedgerEntry.beneficiary_ib_id == ib_id)
            .group_by(CommissionLedgerEntry.level)
        )
        result = await self.session.execute(stmt)
        return {
            row.level: {"count": row.count, "total": Decimal(row.total)}
            for row in result.all()
        }
