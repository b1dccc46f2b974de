"""GitHub-backed executors for the bootstrap workflow steps.

Each method fetches one kind of entity through ``GitHubClient`` and
upserts it into the projection tables using the session the workflow
engine hands in. The engine commits that session together with the step
completion record, so a step either lands entirely or not at all.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from github_mirror.config import WorkflowConfig, get_settings
from github_mirror.db.repositories import ProjectionRepository, RepositoryRepository
from github_mirror.github.client import GitHubClient
from github_mirror.logging import bind_repo
from github_mirror.schemas.sync_job import BootstrapArgs

from .results import (
    BranchSyncResult,
    CheckRunSyncResult,
    CommitSyncResult,
    FileSyncScheduleResult,
    IssueSyncResult,
    OpenPrSyncTarget,
    PullRequestSyncResult,
    WorkflowRunSyncResult,
)


class GitHubStepExecutor:
    """Fetch-and-store implementation of every bootstrap step.

    Usage:
        async with GitHubClient() as client:
            executor = GitHubStepExecutor(client)
            orchestrator = build_bootstrap_orchestrator(get_session_factory(), executor)
    """

    def __init__(self, client: GitHubClient, config: WorkflowConfig | None = None) -> None:
        self._client = client
        self._config = config or get_settings().workflow

    async def _projection(self, session: AsyncSession, args: BootstrapArgs) -> ProjectionRepository:
        await RepositoryRepository(session).ensure(args.repository_id, args.full_name)
        return ProjectionRepository(session, args.repository_id)

    async def fetch_branches(self, session: AsyncSession, args: BootstrapArgs) -> BranchSyncResult:
        repo = args.repo
        branches = await self._client.list_branches(repo.owner, repo.name)
        projection = await self._projection(session, args)
        count = await projection.upsert_branches(branches)
        bind_repo(args.full_name).info("Stored {} branches", count)
        return BranchSyncResult(branches=count)

    async def fetch_pull_requests(
        self, session: AsyncSession, args: BootstrapArgs
    ) -> PullRequestSyncResult:
        repo = args.repo
        pull_requests = await self._client.list_pull_requests(repo.owner, repo.name)
        projection = await self._projection(session, args)
        count = await projection.upsert_pull_requests(pull_requests)

        targets = [
            OpenPrSyncTarget(number=pr.number, head_sha=pr.head.sha)
            for pr in pull_requests
            if pr.state == "open"
        ]
        bind_repo(args.full_name).info(
            "Stored {} pull requests ({} open)", count, len(targets)
        )
        return PullRequestSyncResult(pull_requests=count, open_pr_sync_targets=targets)

    async def fetch_issues(self, session: AsyncSession, args: BootstrapArgs) -> IssueSyncResult:
        repo = args.repo
        issues = await self._client.list_issues(repo.owner, repo.name)
        projection = await self._projection(session, args)
        count = await projection.upsert_issues(issues)
        bind_repo(args.full_name).info("Stored {} issues", count)
        return IssueSyncResult(issues=count)

    async def fetch_commits(self, session: AsyncSession, args: BootstrapArgs) -> CommitSyncResult:
        repo = args.repo
        commits = await self._client.list_commits(
            repo.owner, repo.name, limit=self._config.commit_window
        )
        projection = await self._projection(session, args)
        count = await projection.upsert_commits(commits)
        bind_repo(args.full_name).info("Stored {} recent commits", count)
        return CommitSyncResult(commits=count)

    async def fetch_check_runs(
        self,
        session: AsyncSession,
        args: BootstrapArgs,
        head_shas: list[str],
    ) -> CheckRunSyncResult:
        repo = args.repo
        projection = await self._projection(session, args)
        total = 0
        for sha in head_shas:
            check_runs = await self._client.list_check_runs(repo.owner, repo.name, sha)
            total += await projection.upsert_check_runs(check_runs)
        bind_repo(args.full_name).info(
            "Stored {} check runs for {} head SHAs", total, len(head_shas)
        )
        return CheckRunSyncResult(head_shas=len(head_shas), check_runs=total)

    async def fetch_workflow_runs(
        self, session: AsyncSession, args: BootstrapArgs
    ) -> WorkflowRunSyncResult:
        repo = args.repo
        runs = await self._client.list_workflow_runs(
            repo.owner, repo.name, limit=self._config.workflow_run_window
        )
        projection = await self._projection(session, args)
        row_ids = await projection.upsert_workflow_runs(runs)

        job_count = 0
        for run in runs:
            jobs = await self._client.list_workflow_jobs(repo.owner, repo.name, run.id)
            job_count += await projection.upsert_workflow_jobs(row_ids[run.id], jobs)

        bind_repo(args.full_name).info(
            "Stored {} workflow runs with {} jobs", len(row_ids), job_count
        )
        return WorkflowRunSyncResult(workflow_runs=len(row_ids), workflow_jobs=job_count)

    async def schedule_pr_file_syncs(
        self,
        session: AsyncSession,
        args: BootstrapArgs,
        targets: list[OpenPrSyncTarget],
    ) -> FileSyncScheduleResult:
        projection = await self._projection(session, args)
        scheduled = await projection.schedule_pr_file_syncs(
            [(target.number, target.head_sha) for target in targets]
        )
        bind_repo(args.full_name).info(
            "Queued {} PR file syncs ({} targets)", scheduled, len(targets)
        )
        return FileSyncScheduleResult(targets=len(targets), scheduled=scheduled)
