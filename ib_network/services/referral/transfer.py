"""
Referral transfer service.

Bulk re-parenting of referred users (and their partner records) under a new
partner. Each user is moved in its own transaction: one bad entry never
blocks the others, and the failed subset can be retried as is.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from ib_network.models.referral_transfer_audit import ReferralTransferAudit
from ib_network.repositories.referred_user_repository import (
    ReferredUserRepository,
)
from ib_network.services.base_service import BaseService, transaction
from ib_network.services.notification import IBEvent, IBEventType
from ib_network.services.referral.graph import ReferralGraph
from ib_network.utils.db_decorators import call_with_conflict_retry
from ib_network.utils.exceptions import IBError, ValidationError
from ib_network.validators import validate_actor


@dataclass
class TransferResult:
    """Outcome of a bulk transfer."""

    target_ib_id: int
    transferred: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def transferred_count(self) -> int:
        return len(self.transferred)

    @property
    def failed_user_ids(self) -> list[int]:
        """User IDs to pass back to transfer() for a retry."""
        return [failure["user_id"] for failure in self.failures]

    @property
    def success(self) -> bool:
        return not self.failures


class ReferralTransferService(BaseService):
    """Cycle-safe bulk re-parenting."""

    async def transfer(
        self, user_ids: Iterable[int], target_ib_id: int, actor: str
    ) -> TransferResult:
        """
        Move users under a target partner.

        Args:
            user_ids: Platform user IDs to move (list, tuple or set; duplicates
                are moved once)
            target_ib_id: New referring partner (must be ACTIVE)
            actor: Admin performing the transfer

        Returns:
            TransferResult with moved, skipped (already under target) and
            failed entries, each failure as {"user_id", "reason", "message"}

        Raises:
            ValidationError: Malformed batch
            UnknownIB: Target missing or not ACTIVE
        """
        actor = validate_actor(actor)
        user_ids = self._validate_batch(user_ids)

        graph = self.sibling(ReferralGraph)
        await graph._get_active_partner(target_ib_id)

        result = TransferResult(target_ib_id=target_ib_id)
        for user_id in user_ids:
            try:
                moved = await call_with_conflict_retry(
                    self._transfer_one, user_id, target_ib_id, actor
                )
            except IBError as e:
                result.failures.append(
                    {"user_id": user_id, "reason": e.code, "message": e.message}
                )
                self.logger.warning(
                    "Referral transfer entry failed",
                    extra={
                        "user_id": user_id,
                        "target_ib_id": target_ib_id,
                        "reason": e.code,
                    },
                )
                continue

            if moved:
                result.transferred.append(user_id)
            else:
                result.skipped.append(user_id)

        if result.transferred:
            self.emit(
                IBEvent(
                    IBEventType.REFERRALS_TRANSFERRED,
                    target_ib_id,
                    {
                        "transferred_count": result.transferred_count,
                        "actor": actor,
                    },
                )
            )
            await self.commit()

        self.logger.info(
            "Referral transfer finished",
            extra={
                "target_ib_id": target_ib_id,
                "actor": actor,
                "transferred": result.transferred_count,
                "skipped": len(result.skipped),
                "failed": len(result.failures),
            },
        )
        return result

    async def retry_failed(
        self, previous: TransferResult, actor: str
    ) -> TransferResult:
        """Re-run the failed subset of an earlier transfer."""
        return await self.transfer(
            previous.failed_user_ids, previous.target_ib_id, actor
        )

    async def get_history(self, user_id: int) -> list[ReferralTransferAudit]:
        """Get attribution changes of a user, oldest first."""
        return await ReferredUserRepository(self.session).get_transfer_history(
            user_id
        )

    @transaction
    async def _transfer_one(
        self, user_id: int, target_ib_id: int, actor: str
    ) -> bool:
        graph = self.sibling(ReferralGraph)
        # Reloaded per entry: earlier entries changed its count and version
        target = await graph._get_active_partner(target_ib_id)
        audit = await graph._reparent(user_id, target, actor)
        return audit is not None

    @staticmethod
    def _validate_batch(user_ids: Iterable[int]) -> list[int]:
        if isinstance(user_ids, (str, bytes, dict)) or not isinstance(
            user_ids, Iterable
        ):
            raise ValidationError(
                "user_ids must be a collection of user IDs", field="user_ids"
            )
        is_set = isinstance(user_ids, (set, frozenset))
        user_ids = list(user_ids)
        for user_id in user_ids:
            if isinstance(user_id, bool) or not isinstance(user_id, int):
                raise ValidationError(
                    f"Invalid user id: {user_id!r}", field="user_ids"
                )

        unique = list(dict.fromkeys(user_ids))
        if not unique:
            raise ValidationError("user_ids must not be empty", field="user_ids")
        # Sets carry no order; process them by ascending user ID
        if is_set:
            unique.sort()
        return unique
