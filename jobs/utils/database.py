"""Database session factory for background tasks."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from ib_network.config.database import create_session_maker
from ib_network.config.settings import settings


def create_task_engine() -> AsyncEngine:
    """
    Create engine for worker threads.

    NullPool: connections are never shared between the per-thread loops.
    """
    return create_async_engine(
        settings.async_database_url,
        echo=False,
        poolclass=NullPool,
    )


def create_task_session_maker(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create session maker for tasks."""
    return create_session_maker(engine or create_task_engine())


# Ready-to-use instances
task_engine = create_task_engine()
task_session_maker = create_task_session_maker(task_engine)
