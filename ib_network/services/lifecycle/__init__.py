"""
IB lifecycle package.

- state_machine: allowed transitions
- kyc: KYC collaborator protocol
- lifecycle_service: applications and status transitions
"""

from ib_network.services.lifecycle.kyc import KycProvider, StaticKycProvider
from ib_network.services.lifecycle.lifecycle_service import (
    DanglingReferences,
    IBLifecycleService,
)
from ib_network.services.lifecycle.state_machine import (
    TRANSITIONS,
    LifecycleAction,
    allowed_actions,
    next_status,
)


__all__ = [
    "DanglingReferences",
    "IBLifecycleService",
    "KycProvider",
    "LifecycleAction",
    "StaticKycProvider",
    "TRANSITIONS",
    "allowed_actions",
    "next_status",
]
