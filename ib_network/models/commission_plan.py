"""
CommissionPlan model.

Named commission schedule: one rate per referral distance, up to 5 levels.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ib_network.config.constants import COMMISSION_LEVELS
from ib_network.models.base import Base
from ib_network.models.enums import CommissionType
from ib_network.models.types import RateType


class CommissionPlan(Base):
    """
    CommissionPlan entity.

    Exactly one row has is_default = true. The partial unique index backs
    that invariant in the database; PlanService keeps it on every write.
    """

    __tablename__ = "commission_plans"
    __table_args__ = (
        CheckConstraint(
            "max_levels >= 1 AND max_levels <= 5", name="max_levels_range"
        ),
        Index(
            "uq_commission_plans_single_default",
            "is_default",
            unique=True,
            postgresql_where=text("is_default = true"),
            sqlite_where=text("is_default = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    name: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    commission_type: Mapped[str] = mapped_column(
        String(20), default=CommissionType.PER_LOT, nullable=False
    )
    max_levels: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    # Rate per distance from the trader (level 1 = direct IB)
    level1_rate: Mapped[Decimal] = mapped_column(
        RateType, default=Decimal("0"), nullable=False
    )
    level2_rate: Mapped[Decimal] = mapped_column(
        RateType, default=Decimal("0"), nullable=False
    )
    level3_rate: Mapped[Decimal] = mapped_column(
        RateType, default=Decimal("0"), nullable=False
    )
    level4_rate: Mapped[Decimal] = mapped_column(
        RateType, default=Decimal("0"), nullable=False
    )
    level5_rate: Mapped[Decimal] = mapped_column(
        RateType, default=Decimal("0"), nullable=False
    )

    is_default: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def rate_for(self, distance: int) -> Decimal:
        """
        Get rate for a referral distance.

        Args:
            distance: Hops from the trader (1-5)

        Returns:
            Configured rate, 0 outside the plan's depth
        """
        if distance not in COMMISSION_LEVELS or distance > self.max_levels:
            return Decimal("0")
        return getattr(self, f"level{distance}_rate") or Decimal("0")

    @property
    def level_commissions(self) -> dict[int, Decimal]:
        """Rates keyed by distance, up to max_levels."""
        return {
            level: self.rate_for(level)
            for level in COMMISSION_LEVELS
            if level <= self.max_levels
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionPlan(id={self.id}, name={self.name}, "
            f"type={self.commission_type}, max_levels={self.max_levels}, "
            f"is_default={self.is_default})>"
        )
