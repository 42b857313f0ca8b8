"""
Exception hierarchy.

Defines categorized exception types for the IB partner network. Each category
maps to a handling strategy:

- ValidationError: malformed input, fix the request
- InvariantViolation: request conflicts with a model invariant, never auto-retried
- StateError: operation not allowed in the current state
- NotFoundError: unknown id
- ConcurrencyConflict: optimistic lock lost, state unchanged, safe to retry
- DisabledError: program switched off by the administrative kill-switch
- StorageError: database failure, transaction rolled back
"""

from typing import Any


class IBError(Exception):
    """Base class for all partner network errors."""

    code = "ib_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for API responses and logs."""
        return {"code": self.code, "message": self.message, **self.context}


class ValidationError(IBError):
    """Raised when input is malformed."""

    code = "validation_error"


class InvariantViolation(IBError):
    """Raised when a write would break a model invariant."""

    code = "invariant_violation"


class DuplicateOrder(InvariantViolation):
    code = "duplicate_order"


class NonMonotonicTarget(InvariantViolation):
    code = "non_monotonic_target"


class CycleDetected(InvariantViolation):
    code = "cycle_detected"


class AlreadyAttributed(InvariantViolation):
    code = "already_attributed"


class DuplicateName(InvariantViolation):
    code = "duplicate_name"


class DuplicateApplication(InvariantViolation):
    code = "duplicate_application"


class DefaultPlanRequired(InvariantViolation):
    code = "default_plan_required"


class ResourceInUse(InvariantViolation):
    code = "resource_in_use"


class StateError(IBError):
    """Raised when an operation is not allowed in the current state."""

    code = "state_error"


class InvalidTransition(StateError):
    code = "invalid_transition"


class KycRequired(StateError):
    code = "kyc_required"


class InsufficientBalance(StateError):
    code = "insufficient_balance"


class NotFoundError(IBError):
    """Raised when an id does not resolve."""

    code = "not_found"


class UnknownIB(NotFoundError):
    """No active partner with the given id or code."""

    code = "unknown_ib"


class UnknownPlan(NotFoundError):
    code = "unknown_plan"


class UnknownLevel(NotFoundError):
    code = "unknown_level"


class UnknownEntry(NotFoundError):
    code = "unknown_entry"


class UnknownWithdrawal(NotFoundError):
    code = "unknown_withdrawal"


class ConcurrencyConflict(IBError):
    """Raised when a compare-and-swap write matched no row."""

    code = "concurrency_conflict"


class DisabledError(IBError):
    """Raised when the partner program is switched off."""

    code = "disabled"


class StorageError(IBError):
    """Raised when the database fails; the transaction was rolled back."""

    code = "storage_error"


# Safe to retry without changing the request
RETRYABLE = (ConcurrencyConflict,)

# Require a corrected admin request
MUST_CORRECT = (ValidationError, InvariantViolation, StateError, NotFoundError)


def is_retryable(exc: Exception) -> bool:
    """
    Check if exception can be retried as-is.

    Args:
        exc: Exception to check

    Returns:
        True for optimistic-lock conflicts
    """
    return isinstance(exc, RETRYABLE)
