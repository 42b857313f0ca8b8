"""Unit tests for error categories and conflict retries."""

import pytest

from ib_network.utils.db_decorators import call_with_conflict_retry, retry_on_conflict
from ib_network.utils.exceptions import (
    MUST_CORRECT,
    ConcurrencyConflict,
    CycleDetected,
    InvariantViolation,
    KycRequired,
    StateError,
    UnknownIB,
    is_retryable,
)


class TestErrorCategories:
    """Test the exception hierarchy."""

    def test_to_dict_includes_context(self):
        error = CycleDetected("loop", ib_id=4, target_ib_id=9)

        assert error.to_dict() == {
            "code": "cycle_detected",
            "message": "loop",
            "ib_id": 4,
            "target_ib_id": 9,
        }

    def test_categories(self):
        assert isinstance(CycleDetected("x"), InvariantViolation)
        assert isinstance(KycRequired("x"), StateError)
        assert isinstance(UnknownIB("x"), MUST_CORRECT)

    def test_only_conflicts_are_retryable(self):
        assert is_retryable(ConcurrencyConflict("x"))
        assert not is_retryable(CycleDetected("x"))
        assert not is_retryable(ValueError("x"))


class TestRetryOnConflict:
    """Test bounded optimistic-lock retries."""

    @pytest.mark.asyncio
    async def test_succeeds_after_conflicts(self):
        """Operation is re-run until it stops conflicting."""
        calls = []

        @retry_on_conflict(attempts=3, backoff_seconds=0)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConcurrencyConflict("lost")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up(self):
        """The last conflict propagates."""
        calls = []

        async def always_conflicts():
            calls.append(1)
            raise ConcurrencyConflict("lost")

        with pytest.raises(ConcurrencyConflict):
            await call_with_conflict_retry(always_conflicts, attempts=2)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_domain_errors_not_retried(self):
        """Invariant violations fail immediately."""
        calls = []

        @retry_on_conflict(attempts=5, backoff_seconds=0)
        async def cycle():
            calls.append(1)
            raise CycleDetected("loop")

        with pytest.raises(CycleDetected):
            await cycle()

        assert len(calls) == 1

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            retry_on_conflict(attempts=0)
