"""Repository pattern implementation for database access.

Repository classes encapsulate all database access logic on top of the
SQLAlchemy models. None of them commit; callers own the transaction.
"""

from .base import BaseRepository
from .projection import ProjectionRepository
from .repository import RepositoryRepository
from .sync_job import SyncJobExistsError, SyncJobRepository, is_valid_transition
from .workflow import WorkflowRepository

__all__ = [
    "BaseRepository",
    "ProjectionRepository",
    "RepositoryRepository",
    "SyncJobExistsError",
    "SyncJobRepository",
    "WorkflowRepository",
    "is_valid_transition",
]
