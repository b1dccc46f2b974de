"""End-to-end tests for the bootstrap_repo workflow.

The real GitHubStepExecutor and projection writers run against an
in-memory database; only the GitHub client is mocked.

Tests cover:
- Full bootstrap of one repository (projection counts, job lifecycle)
- Skipping check runs and PR file syncs when there are no open PRs
- Resuming after a crash without repeating completed steps
- Retry, rate-limit, fatal and exhausted failures and their job transitions
- Failures of the mark-running step itself (job never skips running)
- Concurrent starts for one lock key
- Cancellation at a step boundary
"""

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from github_mirror.config import WorkflowConfig
from github_mirror.db.models import (
    Branch,
    CheckRun,
    Commit,
    Issue,
    PrFileSync,
    PullRequest,
    SyncJobState,
    WorkflowInstance,
    WorkflowJob,
    WorkflowRun,
    WorkflowStatus,
)
from github_mirror.db.repositories import (
    RepositoryRepository,
    SyncJobRepository,
    WorkflowRepository,
)
from github_mirror.github.exceptions import (
    GitHubApiError,
    GitHubAuthenticationError,
    GitHubMalformedResponseError,
    GitHubRateLimitError,
)
from github_mirror.github.sync import GitHubStepExecutor
from github_mirror.workflow import (
    BOOTSTRAP_WORKFLOW,
    CANCELED_MESSAGE,
    UNKNOWN_ERROR_MESSAGE,
    RetryPolicy,
    WorkflowCompletion,
    WorkflowResult,
    WorkflowResultKind,
    build_bootstrap_definition,
    build_bootstrap_orchestrator,
    on_bootstrap_complete,
)
from github_mirror.workflow.bootstrap import (
    STEP_FETCH_CHECK_RUNS,
    STEP_FETCH_ISSUES,
    STEP_SCHEDULE_PR_FILE_SYNCS,
)
from tests.factories import (
    LOCK_KEY,
    REPO_FULL_NAME,
    REPO_ID,
    SHA_SHARED,
    SHA_SINGLE,
    make_github_pr,
    make_mock_client,
    make_sync_job,
)

BRANCHES_URL = "https://api.github.com/repos/acme/widgets/branches"
FAST_RETRY = RetryPolicy(max_step_attempts=3, initial_backoff_ms=0)


class Crash(BaseException):
    """Simulates the process dying mid-step."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
async def register_job(session_factory, lock_key: str = LOCK_KEY) -> None:
    async with session_factory() as session:
        await SyncJobRepository(session).create(lock_key, repository_id=REPO_ID)
        await session.commit()


async def load_job(session_factory, lock_key: str = LOCK_KEY):
    async with session_factory() as session:
        return await SyncJobRepository(session).get_by_lock_key(lock_key)


async def load_instance(session_factory, workflow_id: str):
    async with session_factory() as session:
        return await WorkflowRepository(session).get_with_steps(workflow_id)


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar() or 0


def make_orchestrator(session_factory, client, retry_policy: RetryPolicy = FAST_RETRY):
    executor = GitHubStepExecutor(client, WorkflowConfig())
    return build_bootstrap_orchestrator(session_factory, executor, retry_policy=retry_policy)


@pytest.fixture
def recorded_marks(monkeypatch):
    """Record every (state, last_error) written to a sync job."""
    marks: list[tuple[SyncJobState, str | None]] = []
    original = SyncJobRepository.mark

    async def spy(self, lock_key, state, last_error=None):
        marks.append((state, last_error))
        return await original(self, lock_key, state, last_error)

    monkeypatch.setattr(SyncJobRepository, "mark", spy)
    return marks


@pytest.fixture
def job_transitions(monkeypatch):
    """Record (previous, new) job states; set ``fail_first`` to break the first mark."""
    original = SyncJobRepository.mark

    class Transitions(list):
        fail_first: BaseException | None = None

    transitions = Transitions()

    async def spy(self, lock_key, state, last_error=None):
        if transitions.fail_first is not None:
            error, transitions.fail_first = transitions.fail_first, None
            raise error
        job = await self.get_by_lock_key(lock_key)
        if job is not None:
            transitions.append((job.state, state))
        return await original(self, lock_key, state, last_error)

    monkeypatch.setattr(SyncJobRepository, "mark", spy)
    return transitions


# -----------------------------------------------------------------------------
# Test: Happy path
# -----------------------------------------------------------------------------
class TestBootstrapSuccess:
    """Full bootstrap of acme/widgets."""

    async def test_bootstrap_mirrors_repository(self, session_factory):
        """Every entity lands in the projection and the job ends done."""
        await register_job(session_factory)
        client = make_mock_client()
        orchestrator = make_orchestrator(session_factory, client)

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.SUCCESS
        assert result.error is None

        assert await count_rows(session_factory, Branch) == 2
        assert await count_rows(session_factory, PullRequest) == 4
        assert await count_rows(session_factory, Issue) == 5
        assert await count_rows(session_factory, Commit) == 10
        assert await count_rows(session_factory, CheckRun) == 2
        assert await count_rows(session_factory, WorkflowRun) == 1
        assert await count_rows(session_factory, WorkflowJob) == 2
        assert await count_rows(session_factory, PrFileSync) == 3

        job = await load_job(session_factory)
        assert job.state == SyncJobState.DONE
        assert job.attempt_count == 2
        assert job.last_error is None

    async def test_check_runs_fetched_once_per_unique_sha(self, session_factory):
        """Two open PRs share a head SHA, so only two SHAs are queried."""
        await register_job(session_factory)
        client = make_mock_client()
        orchestrator = make_orchestrator(session_factory, client)

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        await orchestrator.wait(workflow_id)

        refs = [call.args[2] for call in client.list_check_runs.await_args_list]
        assert sorted(refs) == sorted([SHA_SHARED, SHA_SINGLE])

    async def test_workflow_instance_fully_logged(self, session_factory):
        """Every step is completed and the completion is marked delivered."""
        await register_job(session_factory)
        orchestrator = make_orchestrator(session_factory, make_mock_client())

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        await orchestrator.wait(workflow_id)

        instance = await load_instance(session_factory, workflow_id)
        assert instance.name == BOOTSTRAP_WORKFLOW
        assert instance.status == WorkflowStatus.COMPLETED
        assert instance.result_kind == "success"
        assert instance.completion_delivered is True
        assert instance.cursor == len(instance.steps) == 9
        assert all(step.completed and not step.skipped for step in instance.steps)

    async def test_repository_marked_synced(self, session_factory):
        await register_job(session_factory)
        orchestrator = make_orchestrator(session_factory, make_mock_client())

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        await orchestrator.wait(workflow_id)

        async with session_factory() as session:
            repo = await RepositoryRepository(session).get_by_id(REPO_ID)
        assert repo is not None
        assert repo.full_name == REPO_FULL_NAME
        assert repo.last_synced_at is not None

    async def test_rerun_does_not_duplicate_rows(self, session_factory):
        """A second bootstrap for another job rewrites the same rows."""
        await register_job(session_factory, "k1")
        await register_job(session_factory, "k2")
        client = make_mock_client()
        orchestrator = make_orchestrator(session_factory, client)

        first = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, "k1")
        await orchestrator.wait(first)
        second = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, "k2")
        await orchestrator.wait(second)

        assert await count_rows(session_factory, Branch) == 2
        assert await count_rows(session_factory, PullRequest) == 4
        assert await count_rows(session_factory, PrFileSync) == 3
        assert (await load_job(session_factory, "k2")).state == SyncJobState.DONE

    async def test_concurrent_starts_run_one_bootstrap(self, file_session_factory):
        """Two starts for one lock key join the same workflow; the job moves once."""
        await register_job(file_session_factory)
        client = make_mock_client()
        orchestrator = make_orchestrator(file_session_factory, client)

        first, second = await asyncio.gather(
            orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY),
            orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY),
        )
        result = await orchestrator.wait(first)

        assert first == second
        assert result.kind is WorkflowResultKind.SUCCESS
        client.list_branches.assert_awaited_once()
        assert await count_rows(file_session_factory, WorkflowInstance) == 1
        job = await load_job(file_session_factory)
        assert job.state == SyncJobState.DONE
        assert job.attempt_count == 2

    async def test_unknown_lock_key_still_syncs(self, session_factory):
        """Without a registered job the workflow runs and writes no job row."""
        orchestrator = make_orchestrator(session_factory, make_mock_client())

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, "missing")
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.SUCCESS
        assert await load_job(session_factory, "missing") is None
        assert await count_rows(session_factory, Branch) == 2


# -----------------------------------------------------------------------------
# Test: Fan-out gating
# -----------------------------------------------------------------------------
class TestBootstrapGating:
    """Steps that depend on open pull requests."""

    async def test_no_open_prs_skips_check_runs_and_file_syncs(self, session_factory):
        await register_job(session_factory)
        client = make_mock_client(
            pull_requests=[make_github_pr(number=9, state="closed", head_sha="f" * 40)]
        )
        orchestrator = make_orchestrator(session_factory, client)

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.SUCCESS
        client.list_check_runs.assert_not_awaited()
        assert await count_rows(session_factory, PrFileSync) == 0
        assert await count_rows(session_factory, CheckRun) == 0

        instance = await load_instance(session_factory, workflow_id)
        skipped = {step.name for step in instance.steps if step.skipped}
        assert skipped == {STEP_FETCH_CHECK_RUNS, STEP_SCHEDULE_PR_FILE_SYNCS}
        assert (await load_job(session_factory)).state == SyncJobState.DONE


# -----------------------------------------------------------------------------
# Test: Resume after crash
# -----------------------------------------------------------------------------
class TestBootstrapResume:
    """A crashed bootstrap resumes without repeating completed steps."""

    async def test_resume_skips_completed_steps(self, session_factory):
        await register_job(session_factory)

        crashing_client = make_mock_client()
        crashing_client.list_issues.side_effect = Crash()
        first = make_orchestrator(session_factory, crashing_client)

        definition = build_bootstrap_definition(GitHubStepExecutor(crashing_client))
        async with session_factory() as session:
            instance = await WorkflowRepository(session).create_instance(
                BOOTSTRAP_WORKFLOW,
                definition.step_names,
                args={"repository_id": REPO_ID, "full_name": REPO_FULL_NAME, "lock_key": LOCK_KEY},
                context={"lock_key": LOCK_KEY},
                lock_key=LOCK_KEY,
            )
            workflow_id = instance.id
            await session.commit()

        with pytest.raises(Crash):
            await first.run(workflow_id)

        crashed = await load_instance(session_factory, workflow_id)
        assert crashed.status == WorkflowStatus.RUNNING
        assert crashed.cursor == 3
        issues_step = next(step for step in crashed.steps if step.name == STEP_FETCH_ISSUES)
        assert issues_step.completed is False

        client = make_mock_client()
        second = make_orchestrator(session_factory, client)
        resumed = await second.resume_incomplete()
        assert resumed == [workflow_id]
        result = await second.wait(workflow_id)

        assert result.kind is WorkflowResultKind.SUCCESS
        client.list_branches.assert_not_awaited()
        client.list_pull_requests.assert_not_awaited()
        client.list_issues.assert_awaited_once()
        # Check runs use the head SHAs stored by the first run
        assert client.list_check_runs.await_count == 2
        assert await count_rows(session_factory, PrFileSync) == 3
        assert await count_rows(session_factory, Branch) == 2

        job = await load_job(session_factory)
        assert job.state == SyncJobState.DONE
        assert job.attempt_count == 2

    async def test_resume_with_nothing_pending(self, session_factory):
        orchestrator = make_orchestrator(session_factory, make_mock_client())
        assert await orchestrator.resume_incomplete() == []


# -----------------------------------------------------------------------------
# Test: Failures and retries
# -----------------------------------------------------------------------------
class TestBootstrapFailures:
    """Failure classification as seen through the sync job."""

    async def test_transient_failure_retries_then_succeeds(self, session_factory, recorded_marks):
        await register_job(session_factory)
        client = make_mock_client()
        error = GitHubApiError(502, "Bad gateway", BRANCHES_URL)
        client.list_branches.side_effect = [error, client.list_branches.return_value]
        orchestrator = make_orchestrator(session_factory, client)

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.SUCCESS
        assert recorded_marks == [
            (SyncJobState.RUNNING, None),
            (SyncJobState.RETRY, str(error)),
            (SyncJobState.RUNNING, None),
            (SyncJobState.DONE, None),
        ]
        job = await load_job(session_factory)
        assert job.state == SyncJobState.DONE
        assert job.attempt_count == 4
        assert job.last_error is None

    async def test_malformed_response_is_retried(self, session_factory):
        await register_job(session_factory)
        client = make_mock_client()
        client.list_issues.side_effect = [
            GitHubMalformedResponseError(200, "Unexpected response shape", "unknown"),
            client.list_issues.return_value,
        ]
        orchestrator = make_orchestrator(session_factory, client)

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.SUCCESS
        assert client.list_issues.await_count == 2
        assert await count_rows(session_factory, Issue) == 5

    async def test_authentication_failure_is_fatal(self, session_factory, recorded_marks):
        await register_job(session_factory)
        client = make_mock_client()
        client.list_branches.side_effect = GitHubAuthenticationError("Bad credentials")
        orchestrator = make_orchestrator(session_factory, client)

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.ERROR
        assert result.error == "GitHub authentication failed: Bad credentials"
        client.list_branches.assert_awaited_once()
        client.list_pull_requests.assert_not_awaited()
        assert [state for state, _ in recorded_marks] == [
            SyncJobState.RUNNING,
            SyncJobState.FAILED,
        ]

        job = await load_job(session_factory)
        assert job.state == SyncJobState.FAILED
        assert job.last_error == "GitHub authentication failed: Bad credentials"
        assert job.attempt_count == 2

        instance = await load_instance(session_factory, workflow_id)
        assert instance.status == WorkflowStatus.FAILED

    async def test_locked_database_on_mark_running_is_retried(
        self, session_factory, job_transitions
    ):
        await register_job(session_factory)
        job_transitions.fail_first = OperationalError(
            "UPDATE sync_jobs", {}, Exception("database is locked")
        )
        orchestrator = make_orchestrator(session_factory, make_mock_client())

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.SUCCESS
        assert job_transitions == [
            (SyncJobState.PENDING, SyncJobState.RUNNING),
            (SyncJobState.RUNNING, SyncJobState.DONE),
        ]
        job = await load_job(session_factory)
        assert job.state == SyncJobState.DONE
        assert job.attempt_count == 2

    async def test_fatal_mark_running_fails_job_through_running(
        self, session_factory, job_transitions
    ):
        await register_job(session_factory)
        job_transitions.fail_first = RuntimeError("mark failed")
        orchestrator = make_orchestrator(session_factory, make_mock_client())

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.ERROR
        assert job_transitions == [
            (SyncJobState.PENDING, SyncJobState.RUNNING),
            (SyncJobState.RUNNING, SyncJobState.FAILED),
        ]
        job = await load_job(session_factory)
        assert job.state == SyncJobState.FAILED
        assert job.last_error == "mark failed"
        assert job.attempt_count == 2

    async def test_retries_exhausted_fails_job(self, session_factory, recorded_marks):
        await register_job(session_factory)
        client = make_mock_client()
        error = GitHubApiError(500, "Server error", BRANCHES_URL)
        client.list_branches.side_effect = error
        orchestrator = make_orchestrator(session_factory, client)

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.ERROR
        assert result.error == str(error)
        assert client.list_branches.await_count == FAST_RETRY.max_step_attempts
        assert [state for state, _ in recorded_marks] == [
            SyncJobState.RUNNING,
            SyncJobState.RETRY,
            SyncJobState.RUNNING,
            SyncJobState.RETRY,
            SyncJobState.RUNNING,
            SyncJobState.FAILED,
        ]

        job = await load_job(session_factory)
        assert job.state == SyncJobState.FAILED
        assert job.last_error == str(error)
        assert job.attempt_count == 6

    async def test_rate_limit_waits_do_not_spend_attempts(self, session_factory):
        await register_job(session_factory)
        client = make_mock_client()
        limited = GitHubRateLimitError(429, "Slow down", BRANCHES_URL, retry_after_ms=0)
        client.list_branches.side_effect = [limited, limited, client.list_branches.return_value]
        orchestrator = make_orchestrator(
            session_factory, client, RetryPolicy(max_step_attempts=1, initial_backoff_ms=0)
        )

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.SUCCESS
        assert client.list_branches.await_count == 3
        assert (await load_job(session_factory)).state == SyncJobState.DONE

    async def test_rate_limit_wait_cap(self, session_factory):
        await register_job(session_factory)
        client = make_mock_client()
        client.list_branches.side_effect = GitHubRateLimitError(
            403, "API rate limit exceeded", BRANCHES_URL, retry_after_ms=0
        )
        orchestrator = make_orchestrator(
            session_factory, client, RetryPolicy(max_rate_limit_waits=2, initial_backoff_ms=0)
        )

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.ERROR
        assert client.list_branches.await_count == 3
        assert (await load_job(session_factory)).state == SyncJobState.FAILED


# -----------------------------------------------------------------------------
# Test: Cancellation
# -----------------------------------------------------------------------------
class TestBootstrapCancellation:
    async def test_cancel_at_step_boundary(self, session_factory):
        """Cancel while fetching branches; the next step never starts."""
        await register_job(session_factory)
        client = make_mock_client()
        branches = client.list_branches.return_value
        entered = asyncio.Event()
        gate = asyncio.Event()

        async def slow_branches(owner, repo):
            entered.set()
            await gate.wait()
            return branches

        client.list_branches.side_effect = slow_branches
        orchestrator = make_orchestrator(session_factory, client)

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        await entered.wait()
        assert await orchestrator.cancel(workflow_id) is True
        gate.set()
        result = await orchestrator.wait(workflow_id)

        assert result.kind is WorkflowResultKind.CANCELED
        client.list_pull_requests.assert_not_awaited()

        job = await load_job(session_factory)
        assert job.state == SyncJobState.FAILED
        assert job.last_error == CANCELED_MESSAGE

        instance = await load_instance(session_factory, workflow_id)
        assert instance.status == WorkflowStatus.CANCELED
        assert instance.completion_delivered is True
        # The in-flight step still committed
        assert await count_rows(session_factory, Branch) == 2

    async def test_cancel_finished_workflow_is_rejected(self, session_factory):
        await register_job(session_factory)
        orchestrator = make_orchestrator(session_factory, make_mock_client())

        workflow_id = await orchestrator.start_bootstrap(REPO_ID, REPO_FULL_NAME, LOCK_KEY)
        await orchestrator.wait(workflow_id)

        assert await orchestrator.cancel(workflow_id) is False


# -----------------------------------------------------------------------------
# Test: Completion callback
# -----------------------------------------------------------------------------
class TestOnBootstrapComplete:
    """Direct tests of the job update done on completion."""

    @pytest.mark.parametrize(
        ("result", "expected_error"),
        [
            (WorkflowResult.failed("boom"), "boom"),
            (WorkflowResult.failed(None), UNKNOWN_ERROR_MESSAGE),
            (WorkflowResult.canceled(), CANCELED_MESSAGE),
        ],
    )
    async def test_unsuccessful_results_fail_the_job(self, db_session, result, expected_error):
        make_sync_job(db_session, state=SyncJobState.RUNNING, attempt_count=1)
        await db_session.flush()

        await on_bootstrap_complete(
            db_session, WorkflowCompletion("wf1", result, {"lock_key": LOCK_KEY})
        )

        job = await SyncJobRepository(db_session).get_by_lock_key(LOCK_KEY)
        assert job.state == SyncJobState.FAILED
        assert job.last_error == expected_error
        assert job.attempt_count == 2

    async def test_success_leaves_job_untouched(self, db_session):
        make_sync_job(db_session, state=SyncJobState.DONE, attempt_count=2)
        await db_session.flush()

        await on_bootstrap_complete(
            db_session,
            WorkflowCompletion("wf1", WorkflowResult.success(), {"lock_key": LOCK_KEY}),
        )

        job = await SyncJobRepository(db_session).get_by_lock_key(LOCK_KEY)
        assert job.state == SyncJobState.DONE
        assert job.attempt_count == 2

    async def test_pending_job_fails_through_running(self, db_session):
        make_sync_job(db_session, state=SyncJobState.PENDING)
        await db_session.flush()

        await on_bootstrap_complete(
            db_session,
            WorkflowCompletion("wf1", WorkflowResult.failed("boom"), {"lock_key": LOCK_KEY}),
        )

        job = await SyncJobRepository(db_session).get_by_lock_key(LOCK_KEY)
        assert job.state == SyncJobState.FAILED
        assert job.last_error == "boom"
        assert job.attempt_count == 2

    async def test_missing_lock_key_is_ignored(self, db_session):
        await on_bootstrap_complete(
            db_session, WorkflowCompletion("wf1", WorkflowResult.failed("boom"), {})
        )
