"""
Database decorators for optimistic-lock retries.

Graph and lifecycle writes are compare-and-swap updates. When a concurrent
writer wins, the loser gets ConcurrencyConflict with state unchanged; these
helpers re-run the whole operation a bounded number of times.
"""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger

from ib_network.config.constants import CONFLICT_RETRY_ATTEMPTS
from ib_network.utils.exceptions import ConcurrencyConflict


T = TypeVar("T")


def retry_on_conflict(
    attempts: int = CONFLICT_RETRY_ATTEMPTS,
    backoff_seconds: float = 0.05,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator that re-runs an async operation on ConcurrencyConflict.

    Usage:
        @retry_on_conflict(attempts=5)
        async def attach_user(graph, user_id, ib_id):
            return await graph.attach(user_id, ib_id)

    Only ConcurrencyConflict is retried. Invariant and state errors
    propagate immediately because retrying cannot fix them.

    Args:
        attempts: Total number of tries (first call included)
        backoff_seconds: Base delay, doubled after each conflict

    Returns:
        Decorator wrapping an async callable
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            delay = backoff_seconds
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except ConcurrencyConflict as e:
                    if attempt == attempts:
                        logger.warning(
                            f"Giving up {func.__name__} after {attempts} conflicts",
                            extra={"error": e.message, **e.context},
                        )
                        raise
                    logger.debug(
                        f"Conflict in {func.__name__}, retrying",
                        extra={"attempt": attempt, **e.context},
                    )
                    if delay:
                        await asyncio.sleep(delay)
                        delay *= 2
            raise AssertionError("unreachable")

        return wrapper

    return decorator


async def call_with_conflict_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    attempts: int = CONFLICT_RETRY_ATTEMPTS,
    **kwargs: Any,
) -> T:
    """Run func with retry_on_conflict without decorating it."""
    return await retry_on_conflict(attempts=attempts)(func)(*args, **kwargs)
