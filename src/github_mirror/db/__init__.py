"""Database module for GitHub Mirror."""

from github_mirror.db.engine import (
    build_engine,
    create_tables,
    dispose_engine,
    get_engine,
    get_session,
    get_session_factory,
    journal_mode,
)
from github_mirror.db.models import (
    Base,
    Branch,
    CheckRun,
    Commit,
    Issue,
    PrFileSync,
    PrFileSyncStatus,
    PullRequest,
    Repository,
    SyncJob,
    SyncJobState,
    WorkflowInstance,
    WorkflowJob,
    WorkflowRun,
    WorkflowStatus,
    WorkflowStep,
)
from github_mirror.db.repositories import (
    BaseRepository,
    ProjectionRepository,
    RepositoryRepository,
    SyncJobRepository,
    WorkflowRepository,
)

__all__ = [
    # Models
    "Base",
    "Branch",
    "CheckRun",
    "Commit",
    "Issue",
    "PrFileSync",
    "PrFileSyncStatus",
    "PullRequest",
    "Repository",
    "SyncJob",
    "SyncJobState",
    "WorkflowInstance",
    "WorkflowJob",
    "WorkflowRun",
    "WorkflowStatus",
    "WorkflowStep",
    # Engine
    "build_engine",
    "create_tables",
    "dispose_engine",
    "get_engine",
    "get_session",
    "get_session_factory",
    "journal_mode",
    # Repositories
    "BaseRepository",
    "ProjectionRepository",
    "RepositoryRepository",
    "SyncJobRepository",
    "WorkflowRepository",
]
