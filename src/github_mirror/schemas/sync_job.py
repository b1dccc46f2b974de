"""Pydantic schemas for sync jobs and the bootstrap workflow arguments."""

from datetime import datetime

from pydantic import BaseModel, Field

from github_mirror.db.models import SyncJobState

from .base import SchemaBase
from .repository import RepositoryRef


class BootstrapArgs(BaseModel):
    """Arguments of a bootstrap workflow, stored with the workflow instance."""

    repository_id: int = Field(description="Upstream repository id")
    full_name: str = Field(description="Repository as 'owner/name'")
    lock_key: str = Field(min_length=1, description="Sync job reporting key")

    @property
    def repo(self) -> RepositoryRef:
        return RepositoryRef.from_full_name(self.full_name)


class SyncJobRead(SchemaBase):
    """Diagnostic view of a sync job."""

    lock_key: str
    state: SyncJobState
    attempt_count: int
    last_error: str | None
    job_type: str
    trigger_reason: str
    repository_id: int | None
    updated_at: datetime
