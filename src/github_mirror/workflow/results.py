"""Terminal results of workflow executions."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class WorkflowResultKind(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    CANCELED = "canceled"


@dataclass(frozen=True)
class WorkflowResult:
    """How a workflow ended. ``error`` is set only for ERROR results."""

    kind: WorkflowResultKind
    error: str | None = None

    @classmethod
    def success(cls) -> "WorkflowResult":
        return cls(WorkflowResultKind.SUCCESS)

    @classmethod
    def failed(cls, error: str | None) -> "WorkflowResult":
        return cls(WorkflowResultKind.ERROR, error)

    @classmethod
    def canceled(cls) -> "WorkflowResult":
        return cls(WorkflowResultKind.CANCELED)


@dataclass(frozen=True)
class WorkflowCompletion:
    """Payload handed to a workflow's completion callback.

    ``context`` is the opaque dict supplied when the workflow was started.
    """

    workflow_id: str
    result: WorkflowResult
    context: dict[str, Any] = field(default_factory=dict)
