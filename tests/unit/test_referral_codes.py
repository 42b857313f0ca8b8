"""Unit tests for referral code generation."""

from ib_network.config.constants import REFERRAL_CODE_ALPHABET
from ib_network.services.referral import generate_referral_code


class TestGenerateReferralCode:
    """Test code format."""

    def test_default_format(self):
        """Default codes are the IB prefix plus six characters."""
        code = generate_referral_code()

        assert code.startswith("IB")
        assert len(code) == 8
        assert all(c in REFERRAL_CODE_ALPHABET for c in code[2:])

    def test_custom_prefix_is_uppercased(self):
        code = generate_referral_code(prefix="vip", length=4)

        assert code.startswith("VIP")
        assert len(code) == 7

    def test_codes_differ(self):
        codes = {generate_referral_code() for _ in range(50)}

        assert len(codes) > 1
