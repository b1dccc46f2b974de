"""Idempotent writers for the mirrored projection tables.

Every upsert is keyed by ``repository_id`` plus the entity's natural key,
so replaying a step after a crash or retry rewrites the same rows.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from github_mirror.db.models import (
    Base,
    Branch,
    CheckRun,
    Commit,
    Issue,
    PrFileSync,
    PrFileSyncStatus,
    PullRequest,
    WorkflowJob,
    WorkflowRun,
)

if TYPE_CHECKING:
    from github_mirror.schemas.github_api import (
        GitHubBranch,
        GitHubCheckRun,
        GitHubCommit,
        GitHubIssue,
        GitHubPullRequest,
        GitHubWorkflowJob,
        GitHubWorkflowRun,
    )

RowT = TypeVar("RowT", bound=Base)


def _naive(value: datetime | None) -> datetime | None:
    """Normalize to naive UTC for storage in timezone-less columns."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class ProjectionRepository:
    """Writes upstream entities of one repository into the projection tables."""

    def __init__(self, session: AsyncSession, repository_id: int) -> None:
        self._session = session
        self._repository_id = repository_id

    @property
    def repository_id(self) -> int:
        return self._repository_id

    async def _upsert(
        self,
        model: type[RowT],
        key_field: str,
        rows: Sequence[dict[str, Any]],
    ) -> list[RowT]:
        """Insert or update rows of ``model`` matched on ``key_field``.

        Returns:
            The persisted rows, in input order
        """
        if not rows:
            return []

        key_column = getattr(model, key_field)
        keys: list[Hashable] = [row[key_field] for row in rows]
        stmt = select(model).where(
            model.repository_id == self._repository_id,  # type: ignore[attr-defined]
            key_column.in_(keys),
        )
        result = await self._session.execute(stmt)
        existing: dict[Hashable, RowT] = {
            getattr(entity, key_field): entity for entity in result.scalars().all()
        }

        persisted: list[RowT] = []
        for row in rows:
            entity = existing.get(row[key_field])
            if entity is None:
                entity = model(repository_id=self._repository_id, **row)
                self._session.add(entity)
                existing[row[key_field]] = entity
            else:
                for field, value in row.items():
                    setattr(entity, field, value)
            persisted.append(entity)

        await self._session.flush()
        return persisted

    # -------------------------------------------------------------------------
    # Entity upserts
    # -------------------------------------------------------------------------

    async def upsert_branches(self, branches: Sequence[GitHubBranch]) -> int:
        rows = [
            {
                "name": branch.name,
                "head_sha": branch.commit.sha,
                "protected": branch.protected,
                "updated_at": datetime.now(UTC),
            }
            for branch in branches
        ]
        return len(await self._upsert(Branch, "name", rows))

    async def upsert_pull_requests(self, pull_requests: Sequence[GitHubPullRequest]) -> int:
        rows = [
            {
                "number": pr.number,
                "github_id": pr.id,
                "title": pr.title,
                "state": pr.state,
                "draft": pr.draft,
                "author_login": pr.user.login if pr.user else None,
                "head_ref": pr.head.ref,
                "head_sha": pr.head.sha,
                "base_ref": pr.base.ref,
                "merged_at": _naive(pr.merged_at),
                "github_created_at": _naive(pr.created_at),
                "github_updated_at": _naive(pr.updated_at),
            }
            for pr in pull_requests
        ]
        return len(await self._upsert(PullRequest, "number", rows))

    async def upsert_issues(self, issues: Sequence[GitHubIssue]) -> int:
        rows = [
            {
                "number": issue.number,
                "github_id": issue.id,
                "title": issue.title,
                "state": issue.state,
                "author_login": issue.user.login if issue.user else None,
                "labels": issue.label_names,
                "comments": issue.comments,
                "github_created_at": _naive(issue.created_at),
                "github_updated_at": _naive(issue.updated_at),
            }
            for issue in issues
        ]
        return len(await self._upsert(Issue, "number", rows))

    async def upsert_commits(self, commits: Sequence[GitHubCommit]) -> int:
        rows = [
            {
                "sha": commit.sha,
                "message": commit.commit.message,
                "author_name": commit.commit.author.name if commit.commit.author else None,
                "author_login": commit.author.login if commit.author else None,
                "authored_at": _naive(commit.commit.author.date) if commit.commit.author else None,
            }
            for commit in commits
        ]
        return len(await self._upsert(Commit, "sha", rows))

    async def upsert_check_runs(self, check_runs: Sequence[GitHubCheckRun]) -> int:
        rows = [
            {
                "github_id": run.id,
                "head_sha": run.head_sha,
                "name": run.name,
                "status": run.status,
                "conclusion": run.conclusion,
                "started_at": _naive(run.started_at),
                "completed_at": _naive(run.completed_at),
            }
            for run in check_runs
        ]
        return len(await self._upsert(CheckRun, "github_id", rows))

    async def upsert_workflow_runs(self, runs: Sequence[GitHubWorkflowRun]) -> dict[int, int]:
        """Upsert workflow runs.

        Returns:
            Mapping of GitHub run id to local row id (for attaching jobs)
        """
        rows = [
            {
                "github_id": run.id,
                "name": run.name,
                "run_number": run.run_number,
                "event": run.event,
                "status": run.status,
                "conclusion": run.conclusion,
                "head_sha": run.head_sha,
                "head_branch": run.head_branch,
                "github_created_at": _naive(run.created_at),
                "github_updated_at": _naive(run.updated_at),
            }
            for run in runs
        ]
        persisted = await self._upsert(WorkflowRun, "github_id", rows)
        return {row.github_id: row.id for row in persisted}

    async def upsert_workflow_jobs(
        self,
        workflow_run_row_id: int,
        jobs: Sequence[GitHubWorkflowJob],
    ) -> int:
        rows = [
            {
                "github_id": job.id,
                "workflow_run_id": workflow_run_row_id,
                "name": job.name,
                "status": job.status,
                "conclusion": job.conclusion,
                "started_at": _naive(job.started_at),
                "completed_at": _naive(job.completed_at),
            }
            for job in jobs
        ]
        return len(await self._upsert(WorkflowJob, "github_id", rows))

    # -------------------------------------------------------------------------
    # Fan-out queue
    # -------------------------------------------------------------------------

    async def schedule_pr_file_syncs(self, targets: Sequence[tuple[int, str]]) -> int:
        """Queue a file sync per ``(pr_number, head_sha)`` not already queued.

        Returns:
            Number of newly scheduled requests
        """
        if not targets:
            return 0

        numbers = {number for number, _ in targets}
        stmt = select(PrFileSync.pr_number, PrFileSync.head_sha).where(
            PrFileSync.repository_id == self._repository_id,
            PrFileSync.pr_number.in_(numbers),
        )
        result = await self._session.execute(stmt)
        queued = {(row.pr_number, row.head_sha) for row in result.all()}

        scheduled = 0
        for number, head_sha in targets:
            if (number, head_sha) in queued:
                continue
            self._session.add(
                PrFileSync(
                    repository_id=self._repository_id,
                    pr_number=number,
                    head_sha=head_sha,
                    status=PrFileSyncStatus.PENDING,
                    scheduled_at=datetime.now(UTC),
                )
            )
            queued.add((number, head_sha))
            scheduled += 1

        await self._session.flush()
        return scheduled
