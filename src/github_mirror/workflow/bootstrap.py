"""The ``bootstrap_repo`` workflow: initial sync of one repository.

Step order:

    mark-running            job pending -> running
    fetch-branches
    fetch-pull-requests     yields the open PR sync targets
    fetch-issues
    fetch-commits
    fetch-check-runs        skipped when there are no open PR head SHAs
    fetch-workflow-runs
    schedule-pr-file-syncs  skipped when there are no open PR targets
    mark-done               job running -> done

The job writes are steps themselves, so a resumed workflow never repeats
them. Failure and cancellation reach the job through ``on_bootstrap_complete``.
"""

from collections.abc import Mapping
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from github_mirror.config import WorkflowConfig
from github_mirror.db.models import SyncJobState
from github_mirror.db.repositories import RepositoryRepository, SyncJobRepository
from github_mirror.github.sync.results import (
    BranchSyncResult,
    CheckRunSyncResult,
    CommitSyncResult,
    FileSyncScheduleResult,
    IssueSyncResult,
    OpenPrSyncTarget,
    PullRequestSyncResult,
    WorkflowRunSyncResult,
)
from github_mirror.logging import get_logger
from github_mirror.schemas.sync_job import BootstrapArgs

from .definition import BOOTSTRAP_WORKFLOW, StepContext, StepDefinition, WorkflowDefinition
from .engine import WorkflowOrchestrator
from .results import WorkflowCompletion, WorkflowResultKind
from .retry import RetryPolicy

logger = get_logger(__name__)

UNKNOWN_ERROR_MESSAGE = "Unknown workflow error"
CANCELED_MESSAGE = "Workflow canceled"

STEP_MARK_RUNNING = "mark-running"
STEP_FETCH_BRANCHES = "fetch-branches"
STEP_FETCH_PULL_REQUESTS = "fetch-pull-requests"
STEP_FETCH_ISSUES = "fetch-issues"
STEP_FETCH_COMMITS = "fetch-commits"
STEP_FETCH_CHECK_RUNS = "fetch-check-runs"
STEP_FETCH_WORKFLOW_RUNS = "fetch-workflow-runs"
STEP_SCHEDULE_PR_FILE_SYNCS = "schedule-pr-file-syncs"
STEP_MARK_DONE = "mark-done"


class BootstrapStepExecutor(Protocol):
    """Performs the fetch steps of a bootstrap.

    Every method writes through ``session`` only; the engine commits it
    together with the step's completion record.
    """

    async def fetch_branches(
        self, session: AsyncSession, args: BootstrapArgs
    ) -> BranchSyncResult: ...

    async def fetch_pull_requests(
        self, session: AsyncSession, args: BootstrapArgs
    ) -> PullRequestSyncResult: ...

    async def fetch_issues(self, session: AsyncSession, args: BootstrapArgs) -> IssueSyncResult: ...

    async def fetch_commits(
        self, session: AsyncSession, args: BootstrapArgs
    ) -> CommitSyncResult: ...

    async def fetch_check_runs(
        self, session: AsyncSession, args: BootstrapArgs, head_shas: list[str]
    ) -> CheckRunSyncResult: ...

    async def fetch_workflow_runs(
        self, session: AsyncSession, args: BootstrapArgs
    ) -> WorkflowRunSyncResult: ...

    async def schedule_pr_file_syncs(
        self,
        session: AsyncSession,
        args: BootstrapArgs,
        targets: list[OpenPrSyncTarget],
    ) -> FileSyncScheduleResult: ...


async def mark_sync_job(
    session: AsyncSession,
    lock_key: str,
    state: SyncJobState,
    last_error: str | None = None,
) -> None:
    """Write a job state change. Unknown lock keys are ignored."""
    await SyncJobRepository(session).mark(lock_key, state, last_error)


def _pr_result(outputs: Mapping[str, Any]) -> PullRequestSyncResult:
    result = outputs.get(STEP_FETCH_PULL_REQUESTS)
    if result is None:
        return PullRequestSyncResult()
    return result  # type: ignore[no-any-return]


def _no_head_shas(outputs: Mapping[str, Any]) -> bool:
    return not _pr_result(outputs).unique_head_shas


def _no_targets(outputs: Mapping[str, Any]) -> bool:
    return not _pr_result(outputs).open_pr_sync_targets


def build_bootstrap_definition(executor: BootstrapStepExecutor) -> WorkflowDefinition:
    """Bind the bootstrap step pipeline to ``executor``."""

    def args_of(ctx: StepContext) -> BootstrapArgs:
        return BootstrapArgs.model_validate(ctx.args)

    async def mark_running(ctx: StepContext) -> None:
        await mark_sync_job(ctx.session, args_of(ctx).lock_key, SyncJobState.RUNNING)

    async def fetch_branches(ctx: StepContext) -> BranchSyncResult:
        return await executor.fetch_branches(ctx.session, args_of(ctx))

    async def fetch_pull_requests(ctx: StepContext) -> PullRequestSyncResult:
        return await executor.fetch_pull_requests(ctx.session, args_of(ctx))

    async def fetch_issues(ctx: StepContext) -> IssueSyncResult:
        return await executor.fetch_issues(ctx.session, args_of(ctx))

    async def fetch_commits(ctx: StepContext) -> CommitSyncResult:
        return await executor.fetch_commits(ctx.session, args_of(ctx))

    async def fetch_check_runs(ctx: StepContext) -> CheckRunSyncResult:
        head_shas = _pr_result(ctx.outputs).unique_head_shas
        return await executor.fetch_check_runs(ctx.session, args_of(ctx), head_shas)

    async def fetch_workflow_runs(ctx: StepContext) -> WorkflowRunSyncResult:
        return await executor.fetch_workflow_runs(ctx.session, args_of(ctx))

    async def schedule_pr_file_syncs(ctx: StepContext) -> FileSyncScheduleResult:
        targets = list(_pr_result(ctx.outputs).open_pr_sync_targets)
        return await executor.schedule_pr_file_syncs(ctx.session, args_of(ctx), targets)

    async def mark_done(ctx: StepContext) -> None:
        args = args_of(ctx)
        await RepositoryRepository(ctx.session).mark_synced(args.repository_id)
        await mark_sync_job(ctx.session, args.lock_key, SyncJobState.DONE)

    return WorkflowDefinition(
        name=BOOTSTRAP_WORKFLOW,
        steps=[
            StepDefinition(STEP_MARK_RUNNING, mark_running),
            StepDefinition(STEP_FETCH_BRANCHES, fetch_branches, BranchSyncResult),
            StepDefinition(STEP_FETCH_PULL_REQUESTS, fetch_pull_requests, PullRequestSyncResult),
            StepDefinition(STEP_FETCH_ISSUES, fetch_issues, IssueSyncResult),
            StepDefinition(STEP_FETCH_COMMITS, fetch_commits, CommitSyncResult),
            StepDefinition(
                STEP_FETCH_CHECK_RUNS,
                fetch_check_runs,
                CheckRunSyncResult,
                skip_if=_no_head_shas,
            ),
            StepDefinition(STEP_FETCH_WORKFLOW_RUNS, fetch_workflow_runs, WorkflowRunSyncResult),
            StepDefinition(
                STEP_SCHEDULE_PR_FILE_SYNCS,
                schedule_pr_file_syncs,
                FileSyncScheduleResult,
                skip_if=_no_targets,
            ),
            StepDefinition(STEP_MARK_DONE, mark_done),
        ],
        on_complete=on_bootstrap_complete,
        on_retry=_on_retry,
        on_retry_resumed=_on_retry_resumed,
    )


async def _job_started(session: AsyncSession, lock_key: str) -> bool:
    """Whether the job has left ``pending`` (``mark-running`` committed)."""
    job = await SyncJobRepository(session).get_by_lock_key(lock_key)
    return job is not None and job.state is not SyncJobState.PENDING


async def _on_retry(session: AsyncSession, context: dict[str, Any], error: str | None) -> None:
    # A failing mark-running step leaves the job pending; it stays there until the retry lands
    lock_key = context.get("lock_key")
    if lock_key and await _job_started(session, lock_key):
        await mark_sync_job(session, lock_key, SyncJobState.RETRY, error)


async def _on_retry_resumed(
    session: AsyncSession, context: dict[str, Any], error: str | None
) -> None:
    lock_key = context.get("lock_key")
    if lock_key and await _job_started(session, lock_key):
        await mark_sync_job(session, lock_key, SyncJobState.RUNNING, error)


async def on_bootstrap_complete(session: AsyncSession, completion: WorkflowCompletion) -> None:
    """Reflect a finished bootstrap onto its sync job.

    Success needs no write: the ``mark-done`` step already did it.
    Errors and cancellation both end in ``failed``. A job that never got
    past ``pending`` is moved to ``running`` first, so ``failed`` is always
    reached from ``running``.
    """
    lock_key = completion.context.get("lock_key")
    if not lock_key:
        logger.warning("Bootstrap {} completed without a lock key", completion.workflow_id)
        return

    result = completion.result
    if result.kind is WorkflowResultKind.SUCCESS:
        return

    error = CANCELED_MESSAGE if result.kind is WorkflowResultKind.CANCELED else result.error
    if not await _job_started(session, lock_key):
        await mark_sync_job(session, lock_key, SyncJobState.RUNNING)
    await mark_sync_job(session, lock_key, SyncJobState.FAILED, error or UNKNOWN_ERROR_MESSAGE)


def build_bootstrap_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    executor: BootstrapStepExecutor,
    *,
    config: WorkflowConfig | None = None,
    retry_policy: RetryPolicy | None = None,
) -> WorkflowOrchestrator:
    """Create an orchestrator able to run the bootstrap workflow."""
    return WorkflowOrchestrator(
        session_factory,
        [build_bootstrap_definition(executor)],
        config=config,
        retry_policy=retry_policy,
    )
