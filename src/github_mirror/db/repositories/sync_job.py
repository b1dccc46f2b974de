"""Repository for SyncJob model operations."""

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from github_mirror.db.models import SyncJob, SyncJobState
from github_mirror.logging import get_logger

from .base import BaseRepository

logger = get_logger(__name__)

# Allowed state changes. RETRY is advisory: execution continues from the
# same step and the job goes back to RUNNING once the backoff elapses.
_TRANSITIONS: dict[SyncJobState, frozenset[SyncJobState]] = {
    SyncJobState.PENDING: frozenset({SyncJobState.RUNNING}),
    SyncJobState.RUNNING: frozenset(
        {SyncJobState.RETRY, SyncJobState.DONE, SyncJobState.FAILED}
    ),
    SyncJobState.RETRY: frozenset({SyncJobState.RUNNING, SyncJobState.FAILED}),
    SyncJobState.DONE: frozenset(),
    SyncJobState.FAILED: frozenset(),
}


def is_valid_transition(current: SyncJobState, new: SyncJobState) -> bool:
    """Check whether a job may move from ``current`` to ``new``."""
    return new in _TRANSITIONS[current]


class SyncJobExistsError(ValueError):
    """Raised when creating a job whose lock key is already taken."""


class SyncJobRepository(BaseRepository[SyncJob]):
    """Repository for the sync job registry.

    Jobs are created by callers (CLI, schedulers) and then only mutated
    by the workflow orchestrator through ``mark``.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, SyncJob)

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    async def get_by_lock_key(self, lock_key: str) -> SyncJob | None:
        return await self._get_by_field("lock_key", lock_key)

    async def list_status(
        self,
        state: SyncJobState | None = None,
        limit: int = 100,
    ) -> list[SyncJob]:
        """List jobs, most recently updated first.

        Args:
            state: Only return jobs in this state (optional)
            limit: Maximum number of jobs to return

        Returns:
            List of jobs
        """
        stmt = select(SyncJob).order_by(SyncJob.updated_at.desc(), SyncJob.id.desc()).limit(limit)
        if state is not None:
            stmt = stmt.where(SyncJob.state == state)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Create/Update Methods
    # -------------------------------------------------------------------------

    async def create(
        self,
        lock_key: str,
        *,
        job_type: str = "bootstrap",
        trigger_reason: str = "bootstrap",
        repository_id: int | None = None,
    ) -> SyncJob:
        """Register a new pending job.

        Raises:
            SyncJobExistsError: If a job with this lock key already exists
        """
        if await self.get_by_lock_key(lock_key) is not None:
            raise SyncJobExistsError(f"Sync job '{lock_key}' already exists")

        now = datetime.now(UTC)
        job = SyncJob(
            lock_key=lock_key,
            job_type=job_type,
            trigger_reason=trigger_reason,
            repository_id=repository_id,
            state=SyncJobState.PENDING,
            attempt_count=0,
            created_at=now,
            updated_at=now,
        )
        self.add(job)
        await self.flush()
        return job

    async def get_or_create(
        self,
        lock_key: str,
        *,
        job_type: str = "bootstrap",
        trigger_reason: str = "bootstrap",
        repository_id: int | None = None,
    ) -> tuple[SyncJob, bool]:
        """Get the job for ``lock_key`` or register a new pending one.

        Returns:
            Tuple of (job, created)
        """
        existing = await self.get_by_lock_key(lock_key)
        if existing is not None:
            return existing, False
        job = await self.create(
            lock_key,
            job_type=job_type,
            trigger_reason=trigger_reason,
            repository_id=repository_id,
        )
        return job, True

    async def mark(
        self,
        lock_key: str,
        state: SyncJobState,
        last_error: str | None = None,
    ) -> SyncJob | None:
        """Record a state change for the job identified by ``lock_key``.

        Every call increments ``attempt_count`` by one and overwrites
        ``last_error`` (``None`` clears it). An unknown lock key is a no-op:
        nothing is created and ``None`` is returned.

        Args:
            lock_key: Job lock key
            state: New state
            last_error: Error message to record, if any

        Returns:
            The updated job, or None if no job has this lock key
        """
        job = await self.get_by_lock_key(lock_key)
        if job is None:
            logger.debug("No sync job for lock key {}, skipping mark {}", lock_key, state.value)
            return None

        if not is_valid_transition(job.state, state):
            logger.warning(
                "Unexpected sync job transition {} -> {} for {}",
                job.state.value,
                state.value,
                lock_key,
            )

        job.state = state
        job.last_error = last_error
        job.attempt_count += 1
        job.updated_at = datetime.now(UTC)
        await self.flush()
        return job
