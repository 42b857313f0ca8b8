"""
Validators package.

Provides validation functions for admin and event input.
"""

from ib_network.validators.common import (
    validate_actor,
    validate_commission_type,
    validate_decimal,
    validate_level_rates,
    validate_max_levels,
    validate_name,
    validate_non_negative_int,
)


__all__ = [
    "validate_actor",
    "validate_commission_type",
    "validate_decimal",
    "validate_level_rates",
    "validate_max_levels",
    "validate_name",
    "validate_non_negative_int",
]
