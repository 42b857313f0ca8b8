"""
IBPartner model.

An Introducing Broker: root or internal node of the referral tree.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ib_network.models.base import Base
from ib_network.models.enums import IBStatus


class IBPartner(Base):
    """
    IBPartner entity.

    parent_ib_id, level_id and plan_id are lookup references only: no
    foreign keys, so deleting a partner never cascades into its downline.

    Attributes:
        id: Primary key
        user_id: Platform user behind the partner (unique)
        referral_code: Code issued on first activation
        parent_ib_id: Upline partner (weak reference)
        status: Lifecycle status
        status_reason: Reason of the last block/suspend/reject
        level_id: Current ladder level
        plan_id: Bound commission plan
        referral_count: Number of users attributed directly to this partner
        auto_upgrade_enabled: Whether count increases promote automatically
        version: Optimistic lock counter, bumped on every graph/status write
    """

    __tablename__ = "ib_partners"
    __table_args__ = (
        CheckConstraint(
            "referral_count >= 0", name="referral_count_non_negative"
        ),
        CheckConstraint(
            "parent_ib_id IS NULL OR parent_ib_id <> id",
            name="not_own_parent",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, unique=True, index=True, nullable=False
    )
    referral_code: Mapped[str | None] = mapped_column(
        String(20), unique=True, index=True, nullable=True
    )
    parent_ib_id: Mapped[int | None] = mapped_column(
        Integer, index=True, nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20), default=IBStatus.PENDING, index=True, nullable=False
    )
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    level_id: Mapped[int | None] = mapped_column(
        Integer, index=True, nullable=True
    )
    plan_id: Mapped[int | None] = mapped_column(
        Integer, index=True, nullable=True
    )

    referral_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    auto_upgrade_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Admin actions
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
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

    @property
    def is_active(self) -> bool:
        """Whether the partner currently accrues commission."""
        return self.status == IBStatus.ACTIVE

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<IBPartner(id={self.id}, user_id={self.user_id}, "
            f"status={self.status}, parent_ib_id={self.parent_ib_id}, "
            f"referral_count={self.referral_count})>"
        )
