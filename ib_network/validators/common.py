"""
Common validators for admin and event input.

Each validator returns the parsed value or raises ValidationError, so
services can validate everything before the first write.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any

from ib_network.config.constants import COMMISSION_LEVELS, MAX_COMMISSION_DEPTH
from ib_network.models.enums import CommissionType
from ib_network.utils.exceptions import ValidationError


_LEVEL_KEY = re.compile(r"^(?:level)?([1-9])$")


def validate_decimal(
    value: Any, field: str, allow_negative: bool = False
) -> Decimal:
    """
    Parse a decimal amount or rate.

    Args:
        value: Raw value (str, int, float or Decimal)
        field: Field name for the error message
        allow_negative: Accept values below zero

    Returns:
        Parsed Decimal

    Examples:
        >>> validate_decimal("2.5", "rate")
        Decimal('2.5')
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field} must be a number", field=field) from e
    if not parsed.is_finite():
        raise ValidationError(f"{field} must be finite", field=field)
    if not allow_negative and parsed < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return parsed


def validate_name(value: Any, field: str = "name", max_length: int = 100) -> str:
    """Validate a non-empty display name."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(
            f"{field} is too long (max {max_length})", field=field
        )
    return value


def validate_commission_type(value: Any) -> CommissionType:
    """
    Validate commission type.

    Accepts the legacy spelling "PERCENT" for PERCENTAGE.
    """
    if value == "PERCENT":
        return CommissionType.PERCENTAGE
    try:
        return CommissionType(value)
    except ValueError as e:
        raise ValidationError(
            f"Unknown commission type: {value}", field="commission_type"
        ) from e


def validate_max_levels(value: Any) -> int:
    """Validate plan depth (1-5)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("max_levels must be an integer", field="max_levels")
    if not 1 <= value <= MAX_COMMISSION_DEPTH:
        raise ValidationError(
            f"max_levels must be between 1 and {MAX_COMMISSION_DEPTH}",
            field="max_levels",
        )
    return value


def validate_non_negative_int(value: Any, field: str) -> int:
    """Validate a non-negative integer (orders, targets)."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(
            f"{field} must be a non-negative integer", field=field
        )
    return value


def validate_level_rates(
    rates: dict[Any, Any] | None, field: str
) -> dict[int, Decimal | None]:
    """
    Normalize a per-distance rate mapping.

    Keys may be 1-5 or "level1".."level5"; values None mean "not defined".

    Args:
        rates: Raw mapping
        field: Field name for error messages

    Returns:
        Dict keyed by distance 1-5 (only keys that were given)
    """
    if rates is None:
        return {}
    if not isinstance(rates, dict):
        raise ValidationError(f"{field} must be a mapping", field=field)

    normalized: dict[int, Decimal | None] = {}
    for key, value in rates.items():
        match = _LEVEL_KEY.match(str(key))
        distance = int(match.group(1)) if match else None
        if distance not in COMMISSION_LEVELS:
            raise ValidationError(
                f"{field} has invalid level {key!r} (expected 1-{MAX_COMMISSION_DEPTH})",
                field=field,
            )
        normalized[distance] = (
            None if value is None else validate_decimal(value, f"{field}[{distance}]")
        )
    return normalized


def validate_actor(value: Any) -> str:
    """Validate the admin identity recorded in audit trails."""
    return validate_name(value, field="actor")
