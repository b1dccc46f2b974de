"""Read-only diagnostics over the mirror database."""

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from github_mirror.db.models import (
    Base,
    Branch,
    CheckRun,
    Commit,
    Issue,
    PrFileSync,
    PullRequest,
    Repository,
    SyncJob,
    WorkflowInstance,
    WorkflowJob,
    WorkflowRun,
)
from github_mirror.db.repositories import SyncJobRepository
from github_mirror.schemas.sync_job import SyncJobRead

_COUNTED_TABLES: dict[str, type[Base]] = {
    "repositories": Repository,
    "branches": Branch,
    "pull_requests": PullRequest,
    "issues": Issue,
    "commits": Commit,
    "check_runs": CheckRun,
    "workflow_runs": WorkflowRun,
    "workflow_jobs": WorkflowJob,
    "pr_file_syncs": PrFileSync,
    "sync_jobs": SyncJob,
    "workflow_instances": WorkflowInstance,
}


class HealthStatus(BaseModel):
    """Whether the database answers, and whether anything is mirrored yet."""

    ok: bool = Field(description="Database reachable")
    table_count: int = Field(description="1 if at least one repository is mirrored, else 0")


async def health_check(session: AsyncSession) -> HealthStatus:
    result = await session.execute(select(Repository.id).limit(1))
    return HealthStatus(ok=True, table_count=len(result.all()))


async def table_counts(session: AsyncSession) -> dict[str, int]:
    """Row counts of every mirrored table, keyed by table name."""
    counts: dict[str, int] = {}
    for name, model in _COUNTED_TABLES.items():
        result = await session.execute(select(func.count()).select_from(model))
        counts[name] = result.scalar() or 0
    return counts


async def sync_job_status(session: AsyncSession, limit: int = 100) -> list[SyncJobRead]:
    """Current state of the sync jobs, most recently updated first."""
    jobs = await SyncJobRepository(session).list_status(limit=limit)
    return SyncJobRead.from_orm_list(jobs)
