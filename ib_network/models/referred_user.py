"""
ReferredUser model.

Leaf of the referral tree: a platform user attributed to a partner.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from ib_network.models.base import Base


class ReferredUser(Base):
    """
    ReferredUser entity.

    referred_by_ib_id is set once at signup and only changes through an
    audited transfer (see ReferralTransferAudit).
    """

    __tablename__ = "referred_users"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, unique=True, index=True, nullable=False
    )
    # Weak reference to ib_partners.id
    referred_by_ib_id: Mapped[int | None] = mapped_column(
        Integer, index=True, nullable=True
    )
    attributed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferredUser(id={self.id}, user_id={self.user_id}, "
            f"referred_by_ib_id={self.referred_by_ib_id})>"
        )
