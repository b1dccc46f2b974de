"""Pydantic schemas for Repository model."""

from datetime import datetime

from pydantic import Field

from .base import SchemaBase


class RepositoryRef(SchemaBase):
    """Owner/name pair identifying an upstream repository."""

    owner: str = Field(min_length=1, max_length=100, description="GitHub org or user")
    name: str = Field(min_length=1, max_length=100, description="Repository name")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_full_name(cls, full_name: str) -> "RepositoryRef":
        """Parse an ``owner/name`` string.

        Raises:
            ValueError: If the string is not exactly two non-empty parts
        """
        parts = full_name.strip().split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Invalid repository '{full_name}', expected 'owner/name'")
        return cls(owner=parts[0], name=parts[1])


class RepositoryRead(SchemaBase):
    """Schema for reading repository data."""

    id: int
    owner: str
    name: str
    full_name: str
    last_synced_at: datetime | None
    created_at: datetime
