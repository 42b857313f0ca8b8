"""
CommissionLedgerEntry model.

Append-only record of one commission payout or its reversal.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ib_network.models.base import Base
from ib_network.models.enums import LedgerEntryType
from ib_network.models.types import LotsType, MoneyType, RateType


class CommissionLedgerEntry(Base):
    """
    CommissionLedgerEntry entity.

    Rows are never updated. (source_event_id, beneficiary_ib_id) is unique,
    which makes reprocessing a trade event a no-op. A reversal uses
    "reversal:<entry id>" as its source_event_id, so every entry can be
    reversed at most once.
    """

    __tablename__ = "commission_ledger_entries"
    __table_args__ = (
        UniqueConstraint(
            "source_event_id",
            "beneficiary_ib_id",
            name="uq_ledger_event_beneficiary",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    source_event_id: Mapped[str] = mapped_column(
        String(128), index=True, nullable=False
    )
    beneficiary_ib_id: Mapped[int] = mapped_column(
        Integer, index=True, nullable=False
    )
    originating_user_id: Mapped[int | None] = mapped_column(
        BigInteger, index=True, nullable=True
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Calculation inputs, kept for audit
    rate: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    commission_type: Mapped[str] = mapped_column(String(20), nullable=False)
    base_lots: Mapped[Decimal] = mapped_column(
        LotsType, default=Decimal("0"), nullable=False
    )
    base_notional: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    entry_type: Mapped[str] = mapped_column(
        String(20), default=LedgerEntryType.COMMISSION, nullable=False
    )
    reverses_entry_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionLedgerEntry(id={self.id}, "
            f"event={self.source_event_id}, "
            f"beneficiary_ib_id={self.beneficiary_ib_id}, "
            f"level={self.level}, amount={self.amount})>"
        )
