"""Base repository pattern implementation for async SQLAlchemy.

Provides common session handling and query helpers shared by all
repositories. Repositories never commit; the caller owns the transaction.
"""

from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from github_mirror.db.models import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Base repository with common async session handling.

    Usage:
        class SyncJobRepository(BaseRepository[SyncJob]):
            def __init__(self, session: AsyncSession) -> None:
                super().__init__(session, SyncJob)

            async def get_by_lock_key(self, lock_key: str) -> SyncJob | None:
                return await self._get_by_field("lock_key", lock_key)
    """

    def __init__(self, session: AsyncSession, model_class: type[ModelT]) -> None:
        """Initialize the repository with a session.

        Args:
            session: Async SQLAlchemy session (caller manages lifecycle)
            model_class: The SQLAlchemy model class this repository manages
        """
        self._session = session
        self._model_class = model_class

    @property
    def session(self) -> AsyncSession:
        """Access the underlying session."""
        return self._session

    # -------------------------------------------------------------------------
    # Common Read Operations
    # -------------------------------------------------------------------------

    async def get_by_id(self, id: int | str) -> ModelT | None:
        """Get an entity by its primary key."""
        return await self._session.get(self._model_class, id)

    async def _get_by_field(self, field_name: str, value: object) -> ModelT | None:
        """Get the entity whose ``field_name`` equals ``value``, if any."""
        stmt = select(self._model_class).where(getattr(self._model_class, field_name) == value)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_all(self, limit: int | None = None) -> list[ModelT]:
        stmt = select(self._model_class)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Common Write Operations
    # -------------------------------------------------------------------------

    def add(self, entity: ModelT) -> ModelT:
        """Add an entity to the session (does not flush)."""
        self._session.add(entity)
        return entity

    async def flush(self) -> None:
        """Flush pending changes without committing."""
        await self._session.flush()

    # -------------------------------------------------------------------------
    # Utility Methods
    # -------------------------------------------------------------------------

    async def count(self) -> int:
        """Count total entities of this type."""
        stmt = select(func.count()).select_from(self._model_class)
        result = await self._session.execute(stmt)
        return result.scalar() or 0
