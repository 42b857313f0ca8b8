"""
IBLevel model.

One rung of the partner ladder. Partners climb by direct referral count.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ib_network.config.constants import COMMISSION_LEVELS
from ib_network.models.base import Base
from ib_network.models.enums import CommissionType
from ib_network.models.types import RateType


class IBLevel(Base):
    """
    IBLevel entity.

    downline rates are nullable: NULL means the level does not override the
    partner's plan at that distance.
    """

    __tablename__ = "ib_levels"
    __table_args__ = (
        CheckConstraint(
            "referral_target >= 0", name="referral_target_non_negative"
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    # Uniqueness among active levels is enforced by LevelService
    order: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    referral_target: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )

    commission_rate: Mapped[Decimal] = mapped_column(
        RateType, default=Decimal("0"), nullable=False
    )
    commission_type: Mapped[str] = mapped_column(
        String(20), default=CommissionType.PER_LOT, nullable=False
    )

    downline1_rate: Mapped[Decimal | None] = mapped_column(RateType, nullable=True)
    downline2_rate: Mapped[Decimal | None] = mapped_column(RateType, nullable=True)
    downline3_rate: Mapped[Decimal | None] = mapped_column(RateType, nullable=True)
    downline4_rate: Mapped[Decimal | None] = mapped_column(RateType, nullable=True)
    downline5_rate: Mapped[Decimal | None] = mapped_column(RateType, nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, index=True, nullable=False
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

    def downline_rate(self, distance: int) -> Decimal | None:
        """
        Get the level's override rate at a distance.

        Returns:
            Rate, or None when the level defines no override there
        """
        if distance not in COMMISSION_LEVELS:
            return None
        return getattr(self, f"downline{distance}_rate")

    @property
    def downline_commission(self) -> dict[int, Decimal]:
        """Defined override rates keyed by distance."""
        return {
            level: rate
            for level in COMMISSION_LEVELS
            if (rate := self.downline_rate(level)) is not None
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<IBLevel(id={self.id}, name={self.name}, order={self.order}, "
            f"referral_target={self.referral_target}, "
            f"is_active={self.is_active})>"
        )
