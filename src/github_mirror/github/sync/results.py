"""Outputs of the bootstrap fetch steps.

Each result is persisted as JSON in the workflow step log and decoded
again when a resumed workflow skips the step, so later steps see exactly
what the original run produced.
"""

from pydantic import BaseModel, Field


class OpenPrSyncTarget(BaseModel):
    """An open pull request whose files should be synced at ``head_sha``."""

    number: int = Field(description="PR number")
    head_sha: str = Field(description="Head commit SHA at fetch time")


class BranchSyncResult(BaseModel):
    branches: int = Field(default=0, description="Branches upserted")


class PullRequestSyncResult(BaseModel):
    """Result of fetching pull requests.

    ``open_pr_sync_targets`` feeds the check-run fetch (by head SHA) and
    the PR file-sync fan-out.
    """

    pull_requests: int = Field(default=0, description="Pull requests upserted")
    open_pr_sync_targets: list[OpenPrSyncTarget] = Field(default_factory=list)

    @property
    def unique_head_shas(self) -> list[str]:
        """Distinct head SHAs of the open targets, in first-seen order."""
        return list(dict.fromkeys(target.head_sha for target in self.open_pr_sync_targets))


class IssueSyncResult(BaseModel):
    issues: int = Field(default=0, description="Issues upserted")


class CommitSyncResult(BaseModel):
    commits: int = Field(default=0, description="Commits upserted")


class CheckRunSyncResult(BaseModel):
    head_shas: int = Field(default=0, description="Commit SHAs queried")
    check_runs: int = Field(default=0, description="Check runs upserted")


class WorkflowRunSyncResult(BaseModel):
    workflow_runs: int = Field(default=0, description="Workflow runs upserted")
    workflow_jobs: int = Field(default=0, description="Workflow jobs upserted")


class FileSyncScheduleResult(BaseModel):
    targets: int = Field(default=0, description="Open PR targets received")
    scheduled: int = Field(default=0, description="File syncs newly queued")
