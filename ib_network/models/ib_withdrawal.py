"""
IBWithdrawal model.

Moves commission from a partner's IB wallet to their trading wallet.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ib_network.models.base import Base
from ib_network.models.enums import WithdrawalStatus
from ib_network.models.types import MoneyType


class IBWithdrawal(Base):
    """IB wallet withdrawal request."""

    __tablename__ = "ib_withdrawals"
    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    ib_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=WithdrawalStatus.PENDING, index=True, nullable=False
    )
    processed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<IBWithdrawal(id={self.id}, ib_id={self.ib_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
