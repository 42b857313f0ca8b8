"""
Base repository.

Generic CRUD operations for all repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ib_network.models.base import Base
from ib_network.utils.exceptions import ConcurrencyConflict

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic CRUD operations.

    Provides async database operations for any SQLAlchemy model.
    Repositories flush but never commit: the calling service owns the
    transaction.

    Type Parameters:
        ModelType: SQLAlchemy model class

    Example:
        class IBLevelRepository(BaseRepository[IBLevel]):
            def __init__(self, session: AsyncSession):
                super().__init__(IBLevel, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: int) -> ModelType | None:
        """
        Get entity by ID (identity map first).

        Args:
            id: Entity ID

        Returns:
            Entity or None if not found
        """
        return await self.session.get(self.model, id)

    async def get_fresh(
        self, id: int, for_update: bool = False
    ) -> ModelType | None:
        """
        Get entity by ID, bypassing the identity map.

        Version checks must compare against the row as stored, not a copy
        loaded earlier in the session.

        Args:
            id: Entity ID
            for_update: Lock the row (ignored by SQLite)

        Returns:
            Entity or None if not found
        """
        stmt = (
            select(self.model)
            .where(self.model.id == id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by(
        self, **filters: Any
    ) -> ModelType | None:
        """
        Get single entity by filters.

        Args:
            **filters: Column filters

        Returns:
            First matching entity or None
        """
        stmt = select(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_all(
        self,
        limit: int | None = None,
        offset: int | None = None,
        **filters: Any,
    ) -> list[ModelType]:
        """
        Find all entities matching filters.

        Args:
            limit: Max number of results
            offset: Number of results to skip
            **filters: Column filters

        Returns:
            List of matching entities ordered by id
        """
        stmt = select(self.model).filter_by(**filters).order_by(self.model.id)

        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_by(
        self, **filters: Any
    ) -> list[ModelType]:
        """
        Find entities by filters.

        Args:
            **filters: Column filters

        Returns:
            List of matching entities
        """
        return await self.find_all(**filters)

    async def create(self, **data: Any) -> ModelType:
        """
        Create new entity.

        Args:
            **data: Entity data

        Returns:
            Created entity
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def compare_and_set(
        self, id: int, expected_version: int, **values: Any
    ) -> bool:
        """
        Update a versioned row only if its version is unchanged.

        Bumps the version in the same statement.

        Args:
            id: Entity ID
            expected_version: Version the caller read
            **values: Column values to write

        Returns:
            True if the row was updated, False if another writer won
        """
        stmt = (
            update(self.model)
            .where(
                self.model.id == id,
                self.model.version == expected_version,
            )
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def update_versioned(
        self, entity: ModelType, **values: Any
    ) -> ModelType:
        """
        Compare-and-set a loaded entity against the version it was read at.

        The entity is refreshed afterwards so further writes in the same
        transaction see the new version.

        Args:
            entity: Loaded versioned entity (no unflushed changes)
            **values: Column values to write

        Returns:
            Refreshed entity

        Raises:
            ConcurrencyConflict: Row changed since it was read
        """
        if not await self.compare_and_set(entity.id, entity.version, **values):
            raise ConcurrencyConflict(
                f"{self.model.__name__} {entity.id} was modified concurrently",
                entity_id=entity.id,
                expected_version=entity.version,
            )
        await self.session.refresh(entity)
        return entity

    async def delete(self, id: int) -> bool:
        """
        Delete entity by ID.

        Args:
            id: Entity ID

        Returns:
            True if deleted, False if not found
        """
        stmt = delete(self.model).where(self.model.id == id)
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def count(self, **filters: Any) -> int:
        """
        Count entities matching filters.

        Args:
            **filters: Column filters

        Returns:
            Count of matching entities
        """
        stmt = select(func.count()).select_from(self.model)

        if filters:
            stmt = stmt.filter_by(**filters)

        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def exists(self, **filters: Any) -> bool:
        """
        Check if entity exists.

        Args:
            **filters: Column filters

        Returns:
            True if exists, False otherwise
        """
        count = await self.count(**filters)
        return count > 0
