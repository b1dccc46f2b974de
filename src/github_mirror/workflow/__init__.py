"""Durable workflow orchestration.

This module provides:
- WorkflowOrchestrator: runs step-logged workflows as asyncio tasks
- WorkflowDefinition/StepDefinition: declarative step pipelines
- RetryPolicy/classify_failure: retry decisions for failed steps
- The bootstrap_repo workflow and its completion callback
"""

from .bootstrap import (
    CANCELED_MESSAGE,
    UNKNOWN_ERROR_MESSAGE,
    BootstrapStepExecutor,
    build_bootstrap_definition,
    build_bootstrap_orchestrator,
    mark_sync_job,
    on_bootstrap_complete,
)
from .definition import BOOTSTRAP_WORKFLOW, StepContext, StepDefinition, WorkflowDefinition
from .engine import WorkflowNotFoundError, WorkflowOrchestrator
from .results import WorkflowCompletion, WorkflowResult, WorkflowResultKind
from .retry import FailureKind, RetryPolicy, classify_failure

__all__ = [
    # Engine
    "WorkflowNotFoundError",
    "WorkflowOrchestrator",
    # Definitions
    "BOOTSTRAP_WORKFLOW",
    "StepContext",
    "StepDefinition",
    "WorkflowDefinition",
    # Results
    "WorkflowCompletion",
    "WorkflowResult",
    "WorkflowResultKind",
    # Retry
    "FailureKind",
    "RetryPolicy",
    "classify_failure",
    # Bootstrap
    "CANCELED_MESSAGE",
    "UNKNOWN_ERROR_MESSAGE",
    "BootstrapStepExecutor",
    "build_bootstrap_definition",
    "build_bootstrap_orchestrator",
    "mark_sync_job",
    "on_bootstrap_complete",
]
