"""
ReferralTransferAudit model.

Append-only trail of attribution overwrites.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ib_network.models.base import Base


class ReferralTransferAudit(Base):
    """One re-parenting of a referred user (and its partner node, if any)."""

    __tablename__ = "referral_transfer_audits"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, index=True, nullable=False
    )
    previous_ib_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    new_ib_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    # Partner node moved together with the user, when the user is an IB
    moved_ib_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actor: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralTransferAudit(user_id={self.user_id}, "
            f"previous_ib_id={self.previous_ib_id}, new_ib_id={self.new_ib_id}, "
            f"actor={self.actor})>"
        )
