"""Repository for GitHub Repository model operations."""

from datetime import UTC, datetime

from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from github_mirror.db.models import Repository
from github_mirror.schemas.repository import RepositoryRef

from .base import BaseRepository


class RepositoryRepository(BaseRepository[Repository]):
    """Repository for mirrored GitHub repositories.

    Rows are keyed by the upstream repository id so projection rows can
    reference them before any metadata is fetched.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Repository)

    async def get_by_full_name(self, full_name: str) -> Repository | None:
        """Get a repository by its full name (e.g. ``acme/widgets``)."""
        return await self._get_by_field("full_name", full_name)

    async def ensure(self, repository_id: int, full_name: str) -> tuple[Repository, bool]:
        """Get the repository row for ``repository_id`` or create it.

        Safe against a concurrent writer creating the same row: the insert
        is skipped on an id conflict and the winner's row is returned.

        Args:
            repository_id: Upstream repository id
            full_name: ``owner/name``

        Returns:
            Tuple of (repository, created)
        """
        existing = await self.get_by_id(repository_id)
        if existing is not None:
            return existing, False

        ref = RepositoryRef.from_full_name(full_name)
        stmt = (
            insert(Repository)
            .values(
                id=repository_id,
                owner=ref.owner,
                name=ref.name,
                full_name=ref.full_name,
                created_at=datetime.now(UTC),
            )
            .on_conflict_do_nothing(index_elements=[Repository.id])
        )
        result = await self._session.execute(stmt)
        repo = await self.get_by_id(repository_id)
        if repo is None:
            raise LookupError(f"Repository {repository_id} vanished while being created")
        return repo, result.rowcount == 1

    async def mark_synced(self, repository_id: int) -> None:
        repo = await self.get_by_id(repository_id)
        if repo is not None:
            repo.last_synced_at = datetime.now(UTC)
            await self.flush()
