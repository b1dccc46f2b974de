"""Bootstrap step executors and their structured outputs."""

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
from .steps import GitHubStepExecutor

__all__ = [
    "BranchSyncResult",
    "CheckRunSyncResult",
    "CommitSyncResult",
    "FileSyncScheduleResult",
    "GitHubStepExecutor",
    "IssueSyncResult",
    "OpenPrSyncTarget",
    "PullRequestSyncResult",
    "WorkflowRunSyncResult",
]
