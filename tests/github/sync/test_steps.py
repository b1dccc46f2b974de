"""Tests for GitHubStepExecutor against a real session and a mocked client."""

from sqlalchemy import select

from github_mirror.config import WorkflowConfig
from github_mirror.db.models import (
    Branch,
    CheckRun,
    Commit,
    Issue,
    PrFileSync,
    PrFileSyncStatus,
    PullRequest,
    Repository,
    WorkflowJob,
    WorkflowRun,
)
from github_mirror.github.sync import GitHubStepExecutor, OpenPrSyncTarget
from github_mirror.schemas.sync_job import BootstrapArgs
from tests.factories import (
    LOCK_KEY,
    REPO_FULL_NAME,
    REPO_ID,
    SHA_SHARED,
    SHA_SINGLE,
    make_mock_client,
)

ARGS = BootstrapArgs(repository_id=REPO_ID, full_name=REPO_FULL_NAME, lock_key=LOCK_KEY)


async def all_rows(session, model):
    result = await session.execute(select(model))
    return list(result.scalars().all())


class TestFetchSteps:
    async def test_fetch_branches_creates_repository(self, db_session):
        client = make_mock_client(branches=3)
        executor = GitHubStepExecutor(client, WorkflowConfig())

        result = await executor.fetch_branches(db_session, ARGS)

        assert result.branches == 3
        client.list_branches.assert_awaited_once_with("acme", "widgets")
        repo = await db_session.get(Repository, REPO_ID)
        assert repo.full_name == REPO_FULL_NAME
        assert len(await all_rows(db_session, Branch)) == 3

    async def test_fetch_pull_requests_yields_open_targets(self, db_session):
        executor = GitHubStepExecutor(make_mock_client(), WorkflowConfig())

        result = await executor.fetch_pull_requests(db_session, ARGS)

        assert result.pull_requests == 4
        assert [t.number for t in result.open_pr_sync_targets] == [1, 2, 3]
        assert result.unique_head_shas == [SHA_SHARED, SHA_SINGLE]

        prs = {pr.number: pr for pr in await all_rows(db_session, PullRequest)}
        assert prs[4].state == "closed"
        assert prs[1].head_sha == SHA_SHARED
        assert prs[1].author_login == "octocat"
        assert prs[1].github_created_at.tzinfo is None

    async def test_fetch_issues(self, db_session):
        executor = GitHubStepExecutor(make_mock_client(issues=5), WorkflowConfig())

        result = await executor.fetch_issues(db_session, ARGS)

        assert result.issues == 5
        assert len(await all_rows(db_session, Issue)) == 5

    async def test_fetch_commits_uses_window(self, db_session):
        client = make_mock_client(commits=10)
        executor = GitHubStepExecutor(client, WorkflowConfig(commit_window=25))

        result = await executor.fetch_commits(db_session, ARGS)

        assert result.commits == 10
        client.list_commits.assert_awaited_once_with("acme", "widgets", limit=25)
        commits = await all_rows(db_session, Commit)
        assert commits[0].author_name == "Octo Cat"

    async def test_fetch_check_runs_per_sha(self, db_session):
        client = make_mock_client()
        executor = GitHubStepExecutor(client, WorkflowConfig())

        result = await executor.fetch_check_runs(db_session, ARGS, [SHA_SHARED, SHA_SINGLE])

        assert result.head_shas == 2
        assert result.check_runs == 2
        assert {run.head_sha for run in await all_rows(db_session, CheckRun)} == {
            SHA_SHARED,
            SHA_SINGLE,
        }

    async def test_fetch_workflow_runs_with_jobs(self, db_session):
        client = make_mock_client()
        executor = GitHubStepExecutor(client, WorkflowConfig(workflow_run_window=5))

        result = await executor.fetch_workflow_runs(db_session, ARGS)

        assert result.workflow_runs == 1
        assert result.workflow_jobs == 2
        client.list_workflow_runs.assert_awaited_once_with("acme", "widgets", limit=5)
        client.list_workflow_jobs.assert_awaited_once_with("acme", "widgets", 7)

        (run,) = await all_rows(db_session, WorkflowRun)
        jobs = await all_rows(db_session, WorkflowJob)
        assert {job.workflow_run_id for job in jobs} == {run.id}


class TestSchedulePrFileSyncs:
    async def test_schedules_each_target_once(self, db_session):
        executor = GitHubStepExecutor(make_mock_client(), WorkflowConfig())
        targets = [
            OpenPrSyncTarget(number=1, head_sha=SHA_SHARED),
            OpenPrSyncTarget(number=2, head_sha=SHA_SHARED),
            OpenPrSyncTarget(number=3, head_sha=SHA_SINGLE),
        ]

        first = await executor.schedule_pr_file_syncs(db_session, ARGS, targets)
        second = await executor.schedule_pr_file_syncs(db_session, ARGS, targets)

        assert (first.targets, first.scheduled) == (3, 3)
        assert (second.targets, second.scheduled) == (3, 0)
        rows = await all_rows(db_session, PrFileSync)
        assert len(rows) == 3
        assert all(row.status == PrFileSyncStatus.PENDING for row in rows)

    async def test_new_head_sha_is_scheduled_again(self, db_session):
        executor = GitHubStepExecutor(make_mock_client(), WorkflowConfig())

        await executor.schedule_pr_file_syncs(
            db_session, ARGS, [OpenPrSyncTarget(number=1, head_sha=SHA_SHARED)]
        )
        result = await executor.schedule_pr_file_syncs(
            db_session, ARGS, [OpenPrSyncTarget(number=1, head_sha=SHA_SINGLE)]
        )

        assert result.scheduled == 1
        assert len(await all_rows(db_session, PrFileSync)) == 2
