"""Integration tests for database error mapping in the transaction decorator."""

import pytest
from sqlalchemy import update

from ib_network.models.ib_partner import IBPartner
from ib_network.services.base_service import BaseService, transaction
from ib_network.utils.exceptions import (
    ConcurrencyConflict,
    InvariantViolation,
    is_retryable,
)


class PartnerWriter(BaseService):
    """Writes raw partner columns, bypassing service validation."""

    @transaction
    async def set_columns(self, ib_id: int, **values) -> None:
        await self.session.execute(
            update(IBPartner).where(IBPartner.id == ib_id).values(**values)
        )
        await self.session.flush()


class TestTransactionErrorMapping:
    """Test how constraint failures surface to callers."""

    @pytest.mark.asyncio
    async def test_unique_collision_is_conflict(self, session, network):
        """Two partners claiming one referral code is a retryable conflict."""
        await network.partner(referral_code="IBAAAAAA")
        other = await network.partner(referral_code="IBBBBBBB")
        other_id = other.id

        with pytest.raises(ConcurrencyConflict) as exc_info:
            await PartnerWriter(session).set_columns(
                other_id, referral_code="IBAAAAAA"
            )

        assert is_retryable(exc_info.value)

    @pytest.mark.asyncio
    async def test_check_failure_is_invariant_violation(self, session, network):
        """A negative referral count breaks a CHECK and is not retried."""
        partner = await network.partner()
        partner_id = partner.id

        with pytest.raises(InvariantViolation) as exc_info:
            await PartnerWriter(session).set_columns(partner_id, referral_count=-1)

        assert not isinstance(exc_info.value, ConcurrencyConflict)
        assert not is_retryable(exc_info.value)

    @pytest.mark.asyncio
    async def test_own_parent_is_invariant_violation(self, session, network):
        """A partner pointing at itself is rejected by the schema."""
        partner = await network.partner()
        partner_id = partner.id

        with pytest.raises(InvariantViolation):
            await PartnerWriter(session).set_columns(
                partner_id, parent_ib_id=partner_id
            )

    @pytest.mark.asyncio
    async def test_state_unchanged_after_violation(self, session, network):
        """The failed write is rolled back."""
        partner = await network.partner()
        partner_id = partner.id

        with pytest.raises(InvariantViolation):
            await PartnerWriter(session).set_columns(partner_id, referral_count=-1)

        refreshed = await session.get(IBPartner, partner_id, populate_existing=True)
        assert refreshed.referral_count == 0
