"""
Referral code generation.

Codes look like IB7K2Q9M: the configured prefix followed by random
uppercase alphanumerics.
"""

import secrets

from ib_network.config.constants import (
    REFERRAL_CODE_ALPHABET,
    REFERRAL_CODE_MAX_ATTEMPTS,
)
from ib_network.config.settings import settings
from ib_network.repositories.ib_partner_repository import IBPartnerRepository
from ib_network.utils.exceptions import StorageError


def generate_referral_code(
    prefix: str | None = None, length: int | None = None
) -> str:
    """
    Generate a random referral code.

    Args:
        prefix: Code prefix (defaults to settings.referral_code_prefix)
        length: Random part length (defaults to settings.referral_code_length)

    Returns:
        Uppercase code, e.g. "IB4F9K2A"
    """
    prefix = settings.referral_code_prefix if prefix is None else prefix
    length = settings.referral_code_length if length is None else length
    suffix = "".join(
        secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length)
    )
    return f"{prefix}{suffix}".upper()


async def issue_unique_code(repo: IBPartnerRepository) -> str:
    """
    Generate a code not yet used by any partner.

    The unique index on referral_code still guards against a concurrent
    writer picking the same code.

    Raises:
        StorageError: No free code found after the bounded attempts
    """
    for _ in range(REFERRAL_CODE_MAX_ATTEMPTS):
        code = generate_referral_code()
        if not await repo.code_exists(code):
            return code
    raise StorageError(
        "Could not generate a unique referral code",
        attempts=REFERRAL_CODE_MAX_ATTEMPTS,
    )
