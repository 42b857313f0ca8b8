"""
KYC collaborator.

Identity verification lives outside the partner network; approval only asks
whether a user's KYC is confirmed.
"""

from typing import Protocol


class KycProvider(Protocol):
    """Answers whether a platform user passed KYC."""

    async def is_kyc_approved(self, user_id: int) -> bool:
        ...


class StaticKycProvider:
    """
    KYC provider backed by an in-memory set of verified users.

    Used by jobs that run without the identity service and by tests.
    """

    def __init__(
        self, approved_user_ids: set[int] | None = None, approve_all: bool = False
    ) -> None:
        self.approved_user_ids = set(approved_user_ids or ())
        self.approve_all = approve_all

    def approve(self, user_id: int) -> None:
        self.approved_user_ids.add(user_id)

    async def is_kyc_approved(self, user_id: int) -> bool:
        return self.approve_all or user_id in self.approved_user_ids
