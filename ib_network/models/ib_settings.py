"""
IB program settings models.

IBSettingsRecord is the persisted singleton; IBSettingsAudit keeps every
administrative change to it.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ib_network.config.constants import DEFAULT_MIN_WITHDRAWAL_AMOUNT
from ib_network.models.base import Base
from ib_network.models.types import MoneyType


GLOBAL_SETTINGS_KEY = "GLOBAL"


class IBSettingsRecord(Base):
    """Program-wide switches, one row keyed by settings_type = GLOBAL."""

    __tablename__ = "ib_settings"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    settings_type: Mapped[str] = mapped_column(
        String(20), default=GLOBAL_SETTINGS_KEY, unique=True, nullable=False
    )

    is_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    allow_new_applications: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    auto_approve: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    kyc_required: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    withdrawal_approval_required: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    min_withdrawal_amount: Mapped[Decimal] = mapped_column(
        MoneyType, default=DEFAULT_MIN_WITHDRAWAL_AMOUNT, nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )


class IBSettingsAudit(Base):
    """One administrative change of the settings singleton."""

    __tablename__ = "ib_settings_audits"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    actor: Mapped[str] = mapped_column(String(100), nullable=False)
    # {"field": {"old": ..., "new": ...}}
    changes: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
