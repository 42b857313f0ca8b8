"""
Base service class.

Provides common functionality for all service classes including session
management, logging, post-commit notifications and the transaction decorator.
"""

import functools
from collections.abc import Callable
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ib_network.services.notification import IBEvent, NotificationDispatcher
from ib_network.utils.exceptions import (
    ConcurrencyConflict,
    IBError,
    InvariantViolation,
    StorageError,
)


# Type variable for generic decorator return types
T = TypeVar("T")
S = TypeVar("S", bound="BaseService")

# SQLSTATE of a PostgreSQL unique violation
UNIQUE_VIOLATION = "23505"


class BaseService:
    """
    Base service class.

    Provides common functionality for all service classes:
    - Session management
    - Logging with bound service context
    - Event queue flushed to the dispatcher only after commit
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        """
        Initialize base service.

        Args:
            session: Async database session
            dispatcher: Notification dispatcher (None = no notifications)
        """
        self.session = session
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.logger = logger.bind(service=self.__class__.__name__)
        self._pending_events: list[IBEvent] = []

    def emit(self, event: IBEvent) -> None:
        """Queue an event for delivery after the current transaction commits."""
        self._pending_events.append(event)

    def sibling(self, service_cls: type[S]) -> S:
        """
        Create another service bound to the same unit of work.

        The sibling shares the session, dispatcher and event queue, so its
        non-committing helpers can be called inside this service's
        transaction.
        """
        other = service_cls(self.session, self.dispatcher)
        other._pending_events = self._pending_events
        return other

    async def commit(self) -> None:
        """Commit current transaction and release queued events."""
        await self.session.commit()
        events = list(self._pending_events)
        self._pending_events.clear()
        self.dispatcher.dispatch(events)

    async def rollback(self) -> None:
        """Rollback current transaction and drop queued events."""
        self._pending_events.clear()
        await self.session.rollback()


def is_unique_violation(error: IntegrityError) -> bool:
    """Check whether an IntegrityError is a unique-key collision."""
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == UNIQUE_VIOLATION
    # SQLite reports "UNIQUE constraint failed: ..."
    return "unique" in str(orig).lower()


def transaction(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator to wrap method in transaction with automatic commit/rollback.

    Commits on success, rolls back on exception. Domain errors (IBError)
    propagate unchanged; a unique-constraint race becomes
    ConcurrencyConflict, any other constraint failure (CHECK, NOT NULL)
    becomes InvariantViolation and any other database failure becomes
    StorageError, so callers never observe a partial commit.

    Usage:
        @transaction
        async def my_service_method(self, ...):
            # Your code here
            pass

    Args:
        func: Async method to wrap

    Returns:
        Wrapped async method
    """
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        try:
            result = await func(self, *args, **kwargs)
            await self.commit()
            return result
        except IBError:
            await self.rollback()
            raise
        except IntegrityError as e:
            await self.rollback()
            if not is_unique_violation(e):
                self.logger.error(
                    f"Constraint violated in {func.__name__}",
                    extra={"error": str(e.orig), "function": func.__name__},
                )
                raise InvariantViolation(
                    "Write rejected by a database constraint",
                    operation=func.__name__,
                ) from e
            self.logger.warning(
                f"Constraint race in {func.__name__}",
                extra={"error": str(e.orig), "function": func.__name__},
            )
            raise ConcurrencyConflict(
                "Concurrent write violated a unique constraint, retry",
                operation=func.__name__,
            ) from e
        except SQLAlchemyError as e:
            await self.rollback()
            self.logger.error(
                f"Transaction failed in {func.__name__}",
                extra={
                    "error": str(e),
                    "function": func.__name__,
                },
                exc_info=True,
            )
            raise StorageError(
                "Database operation failed", operation=func.__name__
            ) from e
        except Exception:
            await self.rollback()
            raise

    return wrapper
