"""Pydantic schemas for GitHub API payloads and database views."""

from .base import SchemaBase
from .github_api import (
    GitHubBranch,
    GitHubCheckRun,
    GitHubCommit,
    GitHubIssue,
    GitHubPullRequest,
    GitHubUser,
    GitHubWorkflowJob,
    GitHubWorkflowRun,
)
from .repository import RepositoryRead, RepositoryRef
from .sync_job import BootstrapArgs, SyncJobRead

__all__ = [
    "SchemaBase",
    # GitHub API
    "GitHubBranch",
    "GitHubCheckRun",
    "GitHubCommit",
    "GitHubIssue",
    "GitHubPullRequest",
    "GitHubUser",
    "GitHubWorkflowJob",
    "GitHubWorkflowRun",
    # Database views
    "BootstrapArgs",
    "RepositoryRead",
    "RepositoryRef",
    "SyncJobRead",
]
