"""
Referral package.

- graph: referral edges, upline/downline walks, audited reparenting
- transfer: bulk cycle-safe transfers
- referral_codes: partner referral code generation
"""

from ib_network.services.referral.graph import ReferralGraph
from ib_network.services.referral.referral_codes import (
    generate_referral_code,
    issue_unique_code,
)
from ib_network.services.referral.transfer import (
    ReferralTransferService,
    TransferResult,
)


__all__ = [
    "ReferralGraph",
    "ReferralTransferService",
    "TransferResult",
    "generate_referral_code",
    "issue_unique_code",
]
