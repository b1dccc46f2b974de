"""Pydantic schemas for parsing GitHub API responses.

Only the fields the mirror stores are declared; everything else in the
payload is ignored. A payload missing a declared field fails validation,
which the client reports as a malformed response.
See: https://docs.github.com/en/rest
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class GitHubUser(BaseModel):
    """GitHub user object from API responses."""

    login: str = Field(description="GitHub username")
    id: int = Field(description="GitHub user ID")


class GitHubLabel(BaseModel):
    """GitHub label object from API responses."""

    name: str = Field(description="Label name")


# -----------------------------------------------------------------------------
# Branches
# -----------------------------------------------------------------------------
class GitHubBranchCommit(BaseModel):
    sha: str = Field(description="Head commit SHA")


class GitHubBranch(BaseModel):
    """Branch from GET /repos/{owner}/{repo}/branches."""

    name: str = Field(description="Branch name")
    commit: GitHubBranchCommit = Field(description="Head commit")
    protected: bool = Field(default=False, description="Whether the branch is protected")


# -----------------------------------------------------------------------------
# Pull requests
# -----------------------------------------------------------------------------
class GitHubRef(BaseModel):
    """Head or base reference of a pull request."""

    ref: str = Field(description="Branch name")
    sha: str = Field(description="Commit SHA")


class GitHubPullRequest(BaseModel):
    """Pull request from GET /repos/{owner}/{repo}/pulls."""

    id: int = Field(description="GitHub PR ID")
    number: int = Field(description="PR number")
    title: str = Field(description="PR title")
    state: str = Field(description="PR state (open, closed)")
    draft: bool = Field(default=False, description="Whether the PR is a draft")
    user: GitHubUser | None = Field(default=None, description="PR author")
    head: GitHubRef = Field(description="Head reference")
    base: GitHubRef = Field(description="Base reference")
    created_at: datetime = Field(description="When PR was created")
    updated_at: datetime = Field(description="Last update timestamp")
    merged_at: datetime | None = Field(default=None, description="When PR was merged")


# -----------------------------------------------------------------------------
# Issues
# -----------------------------------------------------------------------------
class GitHubIssue(BaseModel):
    """Issue from GET /repos/{owner}/{repo}/issues.

    The issues endpoint also returns pull requests; those carry a
    ``pull_request`` key and are filtered out by the client.
    """

    id: int = Field(description="GitHub issue ID")
    number: int = Field(description="Issue number")
    title: str = Field(description="Issue title")
    state: str = Field(description="Issue state (open, closed)")
    user: GitHubUser | None = Field(default=None, description="Issue author")
    labels: list[GitHubLabel | str] = Field(default_factory=list, description="Labels")
    comments: int = Field(default=0, description="Comment count")
    created_at: datetime = Field(description="When the issue was opened")
    updated_at: datetime = Field(description="Last update timestamp")
    pull_request: dict[str, Any] | None = Field(
        default=None, description="Present when the issue is a pull request"
    )

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None

    @property
    def label_names(self) -> list[str]:
        return [label if isinstance(label, str) else label.name for label in self.labels]


# -----------------------------------------------------------------------------
# Commits
# -----------------------------------------------------------------------------
class GitHubCommitAuthor(BaseModel):
    """Commit author info (from git, not GitHub user)."""

    name: str | None = Field(default=None, description="Author name")
    date: datetime | None = Field(default=None, description="Authored date (UTC)")


class GitHubCommitDetail(BaseModel):
    """Nested commit detail object."""

    message: str = Field(description="Commit message")
    author: GitHubCommitAuthor | None = Field(default=None, description="Git author")


class GitHubCommit(BaseModel):
    """Commit from GET /repos/{owner}/{repo}/commits."""

    sha: str = Field(description="Commit SHA")
    commit: GitHubCommitDetail = Field(description="Commit details")
    author: GitHubUser | None = Field(default=None, description="Linked GitHub user")


# -----------------------------------------------------------------------------
# Checks and Actions
# -----------------------------------------------------------------------------
class GitHubCheckRun(BaseModel):
    """Check run from GET /repos/{owner}/{repo}/commits/{ref}/check-runs."""

    id: int = Field(description="Check run ID")
    head_sha: str = Field(description="Commit SHA the check ran against")
    name: str = Field(description="Check name")
    status: str = Field(description="queued, in_progress or completed")
    conclusion: str | None = Field(default=None, description="Outcome once completed")
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)


class GitHubWorkflowRun(BaseModel):
    """Workflow run from GET /repos/{owner}/{repo}/actions/runs."""

    id: int = Field(description="Workflow run ID")
    name: str | None = Field(default=None, description="Workflow name")
    run_number: int = Field(description="Run number within the workflow")
    event: str = Field(description="Triggering event")
    status: str | None = Field(default=None)
    conclusion: str | None = Field(default=None)
    head_sha: str = Field(description="Commit SHA of the run")
    head_branch: str | None = Field(default=None)
    created_at: datetime
    updated_at: datetime


class GitHubWorkflowJob(BaseModel):
    """Job from GET /repos/{owner}/{repo}/actions/runs/{run_id}/jobs."""

    id: int = Field(description="Job ID")
    run_id: int = Field(description="Parent workflow run ID")
    name: str = Field(description="Job name")
    status: str
    conclusion: str | None = Field(default=None)
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
