"""Declarative description of a durable workflow.

A workflow is a fixed, ordered list of named steps. The engine persists a
row per step and runs them in order; a step whose row is already marked
completed is never run again and its stored output is reused.
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from .results import WorkflowCompletion

BOOTSTRAP_WORKFLOW = "bootstrap_repo"


@dataclass
class StepContext:
    """What a running step can see.

    Attributes:
        workflow_id: Id of the workflow instance
        args: Arguments the workflow was started with
        outputs: Decoded outputs of earlier steps, by step name
                 (None for skipped steps)
        session: Session whose transaction also records the step completion
    """

    workflow_id: str
    args: dict[str, Any]
    outputs: Mapping[str, Any]
    session: AsyncSession


StepFn = Callable[[StepContext], Awaitable[Any]]
SkipFn = Callable[[Mapping[str, Any]], bool]
CompletionFn = Callable[[AsyncSession, WorkflowCompletion], Awaitable[None]]
RetryHookFn = Callable[[AsyncSession, dict[str, Any], str | None], Awaitable[None]]


@dataclass(frozen=True)
class StepDefinition:
    """One named step.

    Attributes:
        name: Unique name within the workflow (the step log key)
        run: Coroutine function performing the step
        output_model: Pydantic model used to decode the stored output
        skip_if: Given earlier outputs, return True to record the step as
                 skipped without running it
    """

    name: str
    run: StepFn
    output_model: type[BaseModel] | None = None
    skip_if: SkipFn | None = None

    def encode(self, output: Any) -> Any:
        if isinstance(output, BaseModel):
            return output.model_dump(mode="json")
        return output

    def decode(self, stored: Any) -> Any:
        if stored is None or self.output_model is None:
            return stored
        return self.output_model.model_validate(stored)


@dataclass(frozen=True)
class WorkflowDefinition:
    """A named workflow: its steps and lifecycle hooks.

    Attributes:
        name: Workflow name stored on each instance
        steps: Ordered steps
        on_complete: Called exactly once with the terminal result
        on_retry: Called before waiting to retry a failed step, with the error
        on_retry_resumed: Called after the wait, before the step runs again
    """

    name: str
    steps: Sequence[StepDefinition]
    on_complete: CompletionFn | None = None
    on_retry: RetryHookFn | None = None
    on_retry_resumed: RetryHookFn | None = None
    _by_name: dict[str, StepDefinition] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_name = {step.name: step for step in self.steps}
        if len(by_name) != len(self.steps):
            raise ValueError(f"Workflow '{self.name}' has duplicate step names")
        object.__setattr__(self, "_by_name", by_name)

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]

    def step(self, name: str) -> StepDefinition:
        return self._by_name[name]
