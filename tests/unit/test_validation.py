"""Unit tests for input validators."""

from decimal import Decimal

import pytest

from ib_network.models.enums import CommissionType
from ib_network.utils.exceptions import ValidationError
from ib_network.validators import (
    validate_actor,
    validate_commission_type,
    validate_decimal,
    validate_level_rates,
    validate_max_levels,
    validate_name,
    validate_non_negative_int,
)


class TestValidateDecimal:
    """Test decimal parsing."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2.5", Decimal("2.5")),
            (3, Decimal("3")),
            (0.1, Decimal("0.1")),
            (Decimal("7.25"), Decimal("7.25")),
        ],
    )
    def test_valid(self, value, expected):
        assert validate_decimal(value, "rate") == expected

    @pytest.mark.parametrize("value", [None, True, "abc", "NaN", "Infinity"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError) as exc_info:
            validate_decimal(value, "rate")

        assert exc_info.value.context["field"] == "rate"

    def test_negative_rejected_by_default(self):
        with pytest.raises(ValidationError):
            validate_decimal("-1", "rate")

    def test_negative_allowed(self):
        assert validate_decimal("-1", "amount", allow_negative=True) == Decimal("-1")


class TestValidateLevelRates:
    """Test per-distance rate mappings."""

    def test_integer_and_named_keys(self):
        rates = validate_level_rates({1: "5", "level2": 3, "3": None}, "rates")

        assert rates == {1: Decimal("5"), 2: Decimal("3"), 3: None}

    def test_none_mapping(self):
        assert validate_level_rates(None, "rates") == {}

    @pytest.mark.parametrize("key", [0, 6, "level9", "first"])
    def test_invalid_level(self, key):
        with pytest.raises(ValidationError):
            validate_level_rates({key: 1}, "rates")

    def test_not_a_mapping(self):
        with pytest.raises(ValidationError):
            validate_level_rates([1, 2], "rates")


class TestSimpleValidators:
    """Test scalar validators."""

    def test_name_is_stripped(self):
        assert validate_name("  Gold ") == "Gold"

    @pytest.mark.parametrize("value", ["", "   ", None, 5])
    def test_name_required(self, value):
        with pytest.raises(ValidationError):
            validate_name(value)

    def test_name_too_long(self):
        with pytest.raises(ValidationError):
            validate_name("x" * 51, max_length=50)

    def test_commission_type_legacy_spelling(self):
        assert validate_commission_type("PERCENT") == CommissionType.PERCENTAGE

    def test_commission_type_unknown(self):
        with pytest.raises(ValidationError):
            validate_commission_type("FLAT")

    @pytest.mark.parametrize("value", [1, 3, 5])
    def test_max_levels_valid(self, value):
        assert validate_max_levels(value) == value

    @pytest.mark.parametrize("value", [0, 6, "3", True])
    def test_max_levels_invalid(self, value):
        with pytest.raises(ValidationError):
            validate_max_levels(value)

    @pytest.mark.parametrize("value", [-1, 1.5, None, False])
    def test_non_negative_int_invalid(self, value):
        with pytest.raises(ValidationError):
            validate_non_negative_int(value, "order")

    def test_actor_required(self):
        with pytest.raises(ValidationError):
            validate_actor("")
