"""SQLAlchemy ORM models for GitHub Mirror."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)
from sqlalchemy.types import JSON


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SyncJobState(str, Enum):
    """Lifecycle state of a sync job."""

    PENDING = "pending"  # Created by the caller, workflow not started
    RUNNING = "running"
    RETRY = "retry"  # Advisory: a step failed and is waiting to be retried
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions are expected."""
        return self in (SyncJobState.DONE, SyncJobState.FAILED)


class WorkflowStatus(str, Enum):
    """Execution status of a workflow instance."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            WorkflowStatus.COMPLETED,
            WorkflowStatus.FAILED,
            WorkflowStatus.CANCELED,
        )


class PrFileSyncStatus(str, Enum):
    """Status of a scheduled per-PR file sync."""

    PENDING = "pending"
    DONE = "done"


# ------------------------------------------------------------------------------
# Repository model
# ------------------------------------------------------------------------------
class Repository(Base):
    """Mirrored GitHub repository."""

    __tablename__ = "repositories"

    id: Mapped[int] = mapped_column(primary_key=True)  # Upstream repository id
    owner: Mapped[str] = mapped_column(String(100))
    name: Mapped[str] = mapped_column(String(100))
    full_name: Mapped[str] = mapped_column(String(200), unique=True)  # "acme/widgets"
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    def __repr__(self) -> str:
        return f"<Repository(id={self.id}, full_name='{self.full_name}')>"


# ------------------------------------------------------------------------------
# Projection models (one table per mirrored entity)
# ------------------------------------------------------------------------------
class Branch(Base):
    """Branch head as last seen upstream."""

    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(255))
    head_sha: Mapped[str] = mapped_column(String(40))
    protected: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("repository_id", "name", name="uq_branch_repo_name"),)


class PullRequest(Base):
    """Pull request summary."""

    __tablename__ = "pull_requests"

    id: Mapped[int] = mapped_column(primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"))
    github_id: Mapped[int] = mapped_column(BigInteger)
    number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(String(500))
    state: Mapped[str] = mapped_column(String(20))  # open | closed
    draft: Mapped[bool] = mapped_column(Boolean, default=False)
    author_login: Mapped[str | None] = mapped_column(String(100), nullable=True)
    head_ref: Mapped[str] = mapped_column(String(255))
    head_sha: Mapped[str] = mapped_column(String(40))
    base_ref: Mapped[str] = mapped_column(String(255))
    merged_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    github_created_at: Mapped[datetime] = mapped_column(DateTime)
    github_updated_at: Mapped[datetime] = mapped_column(DateTime)

    __table_args__ = (UniqueConstraint("repository_id", "number", name="uq_repo_pr_number"),)


class Issue(Base):
    """Issue summary (pull requests excluded)."""

    __tablename__ = "issues"

    id: Mapped[int] = mapped_column(primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"))
    github_id: Mapped[int] = mapped_column(BigInteger)
    number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(String(500))
    state: Mapped[str] = mapped_column(String(20))
    author_login: Mapped[str | None] = mapped_column(String(100), nullable=True)
    labels: Mapped[list[str]] = mapped_column(JSON, default=list)
    comments: Mapped[int] = mapped_column(Integer, default=0)
    github_created_at: Mapped[datetime] = mapped_column(DateTime)
    github_updated_at: Mapped[datetime] = mapped_column(DateTime)

    __table_args__ = (UniqueConstraint("repository_id", "number", name="uq_repo_issue_number"),)


class Commit(Base):
    """Commit from the recent default-branch window."""

    __tablename__ = "commits"

    id: Mapped[int] = mapped_column(primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"))
    sha: Mapped[str] = mapped_column(String(40))
    message: Mapped[str] = mapped_column(Text)
    author_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    author_login: Mapped[str | None] = mapped_column(String(100), nullable=True)
    authored_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (UniqueConstraint("repository_id", "sha", name="uq_repo_commit_sha"),)


class CheckRun(Base):
    """Check run attached to a commit SHA."""

    __tablename__ = "check_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"))
    github_id: Mapped[int] = mapped_column(BigInteger)
    head_sha: Mapped[str] = mapped_column(String(40))
    name: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(30))
    conclusion: Mapped[str | None] = mapped_column(String(30), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (UniqueConstraint("repository_id", "github_id", name="uq_repo_check_run"),)


class WorkflowRun(Base):
    """GitHub Actions workflow run."""

    __tablename__ = "workflow_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"))
    github_id: Mapped[int] = mapped_column(BigInteger)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    run_number: Mapped[int] = mapped_column(Integer)
    event: Mapped[str] = mapped_column(String(50))
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    conclusion: Mapped[str | None] = mapped_column(String(30), nullable=True)
    head_sha: Mapped[str] = mapped_column(String(40))
    head_branch: Mapped[str | None] = mapped_column(String(255), nullable=True)
    github_created_at: Mapped[datetime] = mapped_column(DateTime)
    github_updated_at: Mapped[datetime] = mapped_column(DateTime)

    jobs: Mapped[list["WorkflowJob"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
    )

    __table_args__ = (UniqueConstraint("repository_id", "github_id", name="uq_repo_workflow_run"),)


class WorkflowJob(Base):
    """Job belonging to a workflow run."""

    __tablename__ = "workflow_jobs"

    id: Mapped[int] = mapped_column(primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"))
    workflow_run_id: Mapped[int] = mapped_column(
        ForeignKey("workflow_runs.id", ondelete="CASCADE")
    )
    github_id: Mapped[int] = mapped_column(BigInteger)
    name: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(30))
    conclusion: Mapped[str | None] = mapped_column(String(30), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    run: Mapped["WorkflowRun"] = relationship(back_populates="jobs")

    __table_args__ = (UniqueConstraint("repository_id", "github_id", name="uq_repo_workflow_job"),)


class PrFileSync(Base):
    """Scheduled file sync for one open pull request at a given head SHA."""

    __tablename__ = "pr_file_syncs"

    id: Mapped[int] = mapped_column(primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"))
    pr_number: Mapped[int] = mapped_column(Integer)
    head_sha: Mapped[str] = mapped_column(String(40))
    status: Mapped[PrFileSyncStatus] = mapped_column(default=PrFileSyncStatus.PENDING)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    __table_args__ = (
        UniqueConstraint("repository_id", "pr_number", "head_sha", name="uq_repo_pr_file_sync"),
    )


# ------------------------------------------------------------------------------
# SyncJob model
# ------------------------------------------------------------------------------
class SyncJob(Base):
    """Lifecycle record of one logical sync, keyed by a caller-chosen lock key.

    Rows are created by the caller before a workflow starts and are only
    mutated afterwards through ``SyncJobRepository.mark``.
    """

    __tablename__ = "sync_jobs"

    id: Mapped[int] = mapped_column(primary_key=True)
    lock_key: Mapped[str] = mapped_column(String(255), unique=True)
    repository_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    job_type: Mapped[str] = mapped_column(String(50))
    trigger_reason: Mapped[str] = mapped_column(String(50))
    state: Mapped[SyncJobState] = mapped_column(default=SyncJobState.PENDING)
    attempt_count: Mapped[int] = mapped_column(default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    def __repr__(self) -> str:
        return (
            f"<SyncJob(lock_key='{self.lock_key}', state={self.state.value}, "
            f"attempts={self.attempt_count})>"
        )


# ------------------------------------------------------------------------------
# Workflow step log
# ------------------------------------------------------------------------------
# Enum columns store member names
_ACTIVE_STATUS_CLAUSE = "status IN ('PENDING', 'RUNNING')"


class WorkflowInstance(Base):
    """A durable workflow execution.

    ``context`` is opaque to the engine and is handed back to the completion
    callback unchanged.
    """

    __tablename__ = "workflow_instances"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    args: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    context: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    lock_key: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    status: Mapped[WorkflowStatus] = mapped_column(default=WorkflowStatus.PENDING)
    cursor: Mapped[int] = mapped_column(default=0)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, default=False)
    result_kind: Mapped[str | None] = mapped_column(String(20), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_delivered: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    steps: Mapped[list["WorkflowStep"]] = relationship(
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowStep.position",
    )

    # At most one unfinished instance per lock key
    __table_args__ = (
        Index(
            "uq_workflow_instances_active_lock_key",
            "lock_key",
            unique=True,
            sqlite_where=text(_ACTIVE_STATUS_CLAUSE),
            postgresql_where=text(_ACTIVE_STATUS_CLAUSE),
        ),
    )

    def __repr__(self) -> str:
        return f"<WorkflowInstance(id='{self.id}', name='{self.name}', status={self.status.value})>"


class WorkflowStep(Base):
    """One entry of a workflow's step log."""

    __tablename__ = "workflow_steps"

    id: Mapped[int] = mapped_column(primary_key=True)
    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_instances.id", ondelete="CASCADE")
    )
    position: Mapped[int] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(100))
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    skipped: Mapped[bool] = mapped_column(Boolean, default=False)
    output: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    attempts: Mapped[int] = mapped_column(default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    workflow: Mapped["WorkflowInstance"] = relationship(back_populates="steps")

    __table_args__ = (UniqueConstraint("workflow_id", "name", name="uq_workflow_step_name"),)

    def __repr__(self) -> str:
        return (
            f"<WorkflowStep(workflow='{self.workflow_id}', {self.position}:{self.name}, "
            f"completed={self.completed})>"
        )
