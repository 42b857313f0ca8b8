"""Pytest configuration and shared fixtures for all tests."""

import os

# Minimal environment for Settings() before any ib_network import
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("ENVIRONMENT", "test")

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from ib_network.config.database import create_session_maker
from ib_network.models import Base, CommissionType, IBStatus
from ib_network.models.commission_plan import CommissionPlan
from ib_network.models.ib_partner import IBPartner
from ib_network.models.referred_user import ReferredUser
from ib_network.repositories.ib_partner_repository import IBPartnerRepository
from ib_network.repositories.referred_user_repository import (
    ReferredUserRepository,
)
from ib_network.services.commission import TradeCloseEvent
from ib_network.services.notification import NotificationDispatcher, RecordingHook
from ib_network.services.plans import PlanService
from ib_network.services.settings_service import IBSettingsSnapshot


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session factory configured like production."""
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_maker):
    """Database session for one test."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def hook():
    """Notification hook keeping events in memory."""
    return RecordingHook()


@pytest.fixture
def dispatcher(hook):
    """Dispatcher delivering to the recording hook."""
    return NotificationDispatcher(hook)


@pytest.fixture
def ib_settings():
    """Program settings with KYC switched off."""
    return IBSettingsSnapshot(kyc_required=False)


class NetworkBuilder:
    """Builds partner trees directly through the repositories."""

    def __init__(self, session) -> None:
        self.session = session
        self._next_user_id = 1000

    def next_user_id(self) -> int:
        self._next_user_id += 1
        return self._next_user_id

    async def plan(
        self,
        name: str = "Standard",
        rates: dict | None = None,
        commission_type: CommissionType = CommissionType.PER_LOT,
        max_levels: int = 3,
        is_default: bool = False,
    ) -> CommissionPlan:
        return await PlanService(self.session).create_plan(
            name=name,
            level_rates=rates or {1: 5, 2: 3, 3: 2},
            commission_type=commission_type,
            max_levels=max_levels,
            is_default=is_default,
        )

    async def partner(
        self,
        parent: IBPartner | None = None,
        status: IBStatus = IBStatus.ACTIVE,
        plan: CommissionPlan | None = None,
        user_id: int | None = None,
        referral_code: str | None = None,
    ) -> IBPartner:
        partner = await IBPartnerRepository(self.session).create(
            user_id=user_id or self.next_user_id(),
            parent_ib_id=parent.id if parent else None,
            status=status,
            plan_id=plan.id if plan else None,
            referral_code=referral_code,
        )
        await self.session.commit()
        return partner

    async def chain(
        self, plan: CommissionPlan | None, depth: int = 3
    ) -> list[IBPartner]:
        """Linear chain, root first."""
        partners: list[IBPartner] = []
        for _ in range(depth):
            partners.append(
                await self.partner(
                    parent=partners[-1] if partners else None, plan=plan
                )
            )
        return partners

    async def trader(
        self, ib: IBPartner | None, user_id: int | None = None
    ) -> ReferredUser:
        record = await ReferredUserRepository(self.session).create(
            user_id=user_id or self.next_user_id(),
            referred_by_ib_id=ib.id if ib else None,
        )
        await self.session.commit()
        return record


@pytest.fixture
def network(session):
    """Tree builder bound to the test session."""
    return NetworkBuilder(session)


def make_trade(
    event_id: str,
    user_id: int,
    lots: str = "10",
    notional: str = "0",
) -> TradeCloseEvent:
    """Build a trade-close event."""
    return TradeCloseEvent(
        event_id=event_id,
        originating_user_id=user_id,
        lots=Decimal(lots),
        notional_amount=Decimal(notional),
    )


@pytest.fixture
def trade():
    """Factory for trade-close events."""
    return make_trade
