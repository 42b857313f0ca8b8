"""
IB lifecycle service.

Applications, admin approval and the block/suspend transitions of partners.
Every transition is validated against the state machine before anything is
written, applied as a version compare-and-set and recorded in the status
history.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ib_network.models.enums import IBStatus
from ib_network.models.ib_partner import IBPartner
from ib_network.models.ib_status_history import IBStatusHistory
from ib_network.models.referred_user import ReferredUser
from ib_network.repositories.ib_partner_repository import IBPartnerRepository
from ib_network.repositories.ib_settings_repository import IBSettingsRepository
from ib_network.repositories.ib_status_history_repository import (
    IBStatusHistoryRepository,
)
from ib_network.repositories.referred_user_repository import (
    ReferredUserRepository,
)
from ib_network.services.base_service import BaseService, transaction
from ib_network.services.levels.level_service import LevelService
from ib_network.services.lifecycle.kyc import KycProvider, StaticKycProvider
from ib_network.services.lifecycle.state_machine import (
    LifecycleAction,
    next_status,
)
from ib_network.services.notification import (
    IBEvent,
    IBEventType,
    NotificationDispatcher,
)
from ib_network.services.plans.plan_service import PlanService
from ib_network.services.referral.referral_codes import issue_unique_code
from ib_network.services.settings_service import IBSettingsSnapshot
from ib_network.utils.exceptions import (
    DisabledError,
    DuplicateApplication,
    KycRequired,
    UnknownIB,
    ValidationError,
)
from ib_network.validators import validate_actor, validate_name


AUTO_APPROVE_ACTOR = "auto_approve"


@dataclass
class DanglingReferences:
    """Weak references left behind by deleted partners."""

    partners: list[IBPartner]
    referred_users: list[ReferredUser]

    @property
    def total(self) -> int:
        return len(self.partners) + len(self.referred_users)


class IBLifecycleService(BaseService):
    """Partner applications and status transitions."""

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher | None = None,
        kyc_provider: KycProvider | None = None,
    ) -> None:
        """
        Initialize lifecycle service.

        Args:
            session: Async database session
            dispatcher: Notification dispatcher
            kyc_provider: KYC collaborator (default: nobody is verified)
        """
        super().__init__(session, dispatcher)
        self.kyc_provider = kyc_provider or StaticKycProvider()

    async def get_partner(self, ib_id: int) -> IBPartner:
        """
        Get partner by ID.

        Raises:
            UnknownIB: No such partner
        """
        partner = await IBPartnerRepository(self.session).get_fresh(ib_id)
        if not partner:
            raise UnknownIB(f"IB partner {ib_id} not found", ib_id=ib_id)
        return partner

    async def list_partners(
        self,
        status: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[IBPartner]:
        """List partners, optionally filtered by status."""
        filters: dict[str, Any] = {}
        if status is not None:
            filters["status"] = self._validate_status(status)
        return await IBPartnerRepository(self.session).find_all(
            limit=limit, offset=offset, **filters
        )

    async def get_status_history(self, ib_id: int) -> list[IBStatusHistory]:
        """Get a partner's transitions, oldest first."""
        return await IBStatusHistoryRepository(self.session).get_for_partner(
            ib_id
        )

    @transaction
    async def apply(
        self, user_id: int, settings: IBSettingsSnapshot
    ) -> IBPartner:
        """
        File an IB application.

        The upline is taken from the user's own attribution when it points
        at an existing partner. With auto_approve the application is
        approved at once, unless KYC is required and not confirmed, in which
        case it stays PENDING.

        Args:
            user_id: Applying platform user
            settings: Program settings snapshot

        Returns:
            New partner (PENDING, or ACTIVE when auto-approved)

        Raises:
            DisabledError: Program disabled or applications closed
            DuplicateApplication: User already has a partner record
        """
        if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
            raise ValidationError("user_id must be a positive integer", field="user_id")
        if not settings.accepts_applications:
            raise DisabledError(
                "IB applications are currently closed",
                is_enabled=settings.is_enabled,
                allow_new_applications=settings.allow_new_applications,
            )

        repo = IBPartnerRepository(self.session)
        existing = await repo.get_by_user_id(user_id)
        if existing:
            raise DuplicateApplication(
                f"User {user_id} already has an IB record",
                user_id=user_id,
                ib_id=existing.id,
                status=existing.status,
            )

        parent_ib_id = None
        attribution = await ReferredUserRepository(self.session).get_by_user_id(
            user_id
        )
        if attribution and attribution.referred_by_ib_id is not None:
            if await repo.get_by_id(attribution.referred_by_ib_id):
                parent_ib_id = attribution.referred_by_ib_id

        partner = await repo.create(
            user_id=user_id,
            parent_ib_id=parent_ib_id,
            status=IBStatus.PENDING,
        )
        await IBStatusHistoryRepository(self.session).record(
            ib_id=partner.id,
            from_status=None,
            to_status=IBStatus.PENDING,
            action=LifecycleAction.APPLY,
        )

        self.logger.info(
            "IB application received",
            extra={
                "ib_id": partner.id,
                "user_id": user_id,
                "parent_ib_id": parent_ib_id,
            },
        )
        self.emit(
            IBEvent(
                IBEventType.APPLICATION_RECEIVED,
                partner.id,
                {"user_id": user_id, "parent_ib_id": parent_ib_id},
            )
        )

        if settings.auto_approve:
            if await self._kyc_satisfied(user_id, settings):
                await self._approve(partner, None, AUTO_APPROVE_ACTOR)
            else:
                self.logger.info(
                    "Auto-approval deferred until KYC is confirmed",
                    extra={"ib_id": partner.id, "user_id": user_id},
                )

        return partner

    @transaction
    async def approve(
        self,
        ib_id: int,
        plan_id: int | None = None,
        *,
        settings: IBSettingsSnapshot | None = None,
        actor: str | None = None,
    ) -> IBPartner:
        """
        Approve a pending application (PENDING -> ACTIVE).

        Binds the given plan or the default one, issues the referral code
        and assigns the level resolved for the current referral count.

        Args:
            ib_id: Partner ID
            plan_id: Plan to bind (None = default plan)
            settings: Program settings snapshot (loaded when omitted)
            actor: Approving admin

        Raises:
            UnknownIB / UnknownPlan: Unknown ids
            InvalidTransition: Partner is not PENDING
            KycRequired: KYC required and not confirmed
        """
        actor = validate_actor(actor) if actor is not None else None
        partner = await self.get_partner(ib_id)
        next_status(partner.status, LifecycleAction.APPROVE)

        if settings is None:
            settings = await self._load_settings()
        if not await self._kyc_satisfied(partner.user_id, settings):
            raise KycRequired(
                "KYC approval required to become an IB",
                ib_id=ib_id,
                user_id=partner.user_id,
            )

        await self._approve(partner, plan_id, actor)
        return partner

    @transaction
    async def reject(
        self, ib_id: int, reason: str, actor: str | None = None
    ) -> IBPartner:
        """PENDING -> REJECTED (terminal)."""
        reason = validate_name(reason, field="reason", max_length=500)
        partner = await self.get_partner(ib_id)
        await self._transition(
            partner,
            LifecycleAction.REJECT,
            reason=reason,
            actor=actor,
            rejected_at=datetime.now(UTC),
        )
        return partner

    @transaction
    async def block(
        self, ib_id: int, reason: str, actor: str | None = None
    ) -> IBPartner:
        """ACTIVE -> BLOCKED. Stops accrual for this partner only."""
        reason = validate_name(reason, field="reason", max_length=500)
        partner = await self.get_partner(ib_id)
        await self._transition(
            partner, LifecycleAction.BLOCK, reason=reason, actor=actor
        )
        return partner

    @transaction
    async def suspend(
        self, ib_id: int, reason: str, actor: str | None = None
    ) -> IBPartner:
        """ACTIVE -> SUSPENDED. Stops accrual for this partner only."""
        reason = validate_name(reason, field="reason", max_length=500)
        partner = await self.get_partner(ib_id)
        await self._transition(
            partner, LifecycleAction.SUSPEND, reason=reason, actor=actor
        )
        return partner

    @transaction
    async def unblock(self, ib_id: int, actor: str | None = None) -> IBPartner:
        """BLOCKED -> ACTIVE."""
        partner = await self.get_partner(ib_id)
        await self._transition(partner, LifecycleAction.UNBLOCK, actor=actor)
        await self.sibling(LevelService)._promote_if_qualified(partner)
        return partner

    @transaction
    async def reinstate(self, ib_id: int, actor: str | None = None) -> IBPartner:
        """SUSPENDED -> ACTIVE."""
        partner = await self.get_partner(ib_id)
        await self._transition(partner, LifecycleAction.REINSTATE, actor=actor)
        await self.sibling(LevelService)._promote_if_qualified(partner)
        return partner

    @transaction
    async def delete_partner(self, ib_id: int, actor: str) -> dict[str, int]:
        """
        Delete a partner record without touching its dependents.

        Children keep their parent_ib_id and referred users keep their
        referred_by_ib_id; both become dangling references to remediate
        with a transfer. Ledger entries stay as posted.

        Returns:
            Counts of references left dangling

        Raises:
            UnknownIB: No such partner
        """
        actor = validate_actor(actor)
        partner = await self.get_partner(ib_id)

        children = await IBPartnerRepository(self.session).count(parent_ib_id=ib_id)
        referred = await ReferredUserRepository(self.session).count_attributed_to(
            ib_id
        )

        await IBPartnerRepository(self.session).delete(ib_id)

        self.logger.warning(
            "IB partner deleted, dependents left dangling",
            extra={
                "ib_id": ib_id,
                "user_id": partner.user_id,
                "actor": actor,
                "dangling_children": children,
                "dangling_referred_users": referred,
            },
        )
        return {"children": children, "referred_users": referred}

    async def find_dangling_references(self) -> DanglingReferences:
        """List weak references pointing at deleted partners."""
        return DanglingReferences(
            partners=await IBPartnerRepository(
                self.session
            ).get_with_dangling_parent(),
            referred_users=await ReferredUserRepository(
                self.session
            ).get_with_dangling_referrer(),
        )

    # Helpers below run inside the caller's transaction and never commit

    async def _approve(
        self, partner: IBPartner, plan_id: int | None, actor: str | None
    ) -> None:
        plan = await self.sibling(PlanService)._resolve_plan_for_binding(plan_id)
        level = await self.sibling(LevelService).resolve(partner.referral_count)

        await self._transition(
            partner,
            LifecycleAction.APPROVE,
            actor=actor,
            plan_id=plan.id,
            level_id=level.id if level else partner.level_id,
            approved_by=actor,
            approved_at=datetime.now(UTC),
        )

    async def _transition(
        self,
        partner: IBPartner,
        action: LifecycleAction,
        reason: str | None = None,
        actor: str | None = None,
        **values: Any,
    ) -> None:
        new_status = next_status(partner.status, action)
        previous_status = partner.status

        repo = IBPartnerRepository(self.session)
        if new_status == IBStatus.ACTIVE and not partner.referral_code:
            values["referral_code"] = await issue_unique_code(repo)

        await repo.update_versioned(
            partner, status=new_status, status_reason=reason, **values
        )
        await IBStatusHistoryRepository(self.session).record(
            ib_id=partner.id,
            from_status=previous_status,
            to_status=new_status,
            action=action,
            reason=reason,
            actor=actor,
        )

        self.logger.info(
            f"IB partner {action}",
            extra={
                "ib_id": partner.id,
                "from_status": previous_status,
                "to_status": new_status,
                "reason": reason,
                "actor": actor,
            },
        )
        self.emit(
            IBEvent(
                IBEventType.STATUS_CHANGED,
                partner.id,
                {
                    "from_status": previous_status,
                    "to_status": new_status,
                    "action": action,
                    "reason": reason,
                },
            )
        )

    async def _kyc_satisfied(
        self, user_id: int, settings: IBSettingsSnapshot
    ) -> bool:
        if not settings.kyc_required:
            return True
        return await self.kyc_provider.is_kyc_approved(user_id)

    async def _load_settings(self) -> IBSettingsSnapshot:
        record = await IBSettingsRepository(self.session).get_or_create_global()
        return IBSettingsSnapshot.from_record(record)

    @staticmethod
    def _validate_status(status: str) -> IBStatus:
        try:
            return IBStatus(status)
        except ValueError as e:
            raise ValidationError(
                f"Unknown status: {status}", field="status"
            ) from e
