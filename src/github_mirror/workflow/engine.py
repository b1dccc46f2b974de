"""Durable workflow orchestrator.

Runs registered ``WorkflowDefinition``s as asyncio tasks on top of an
explicit step log in the database:

- every step commits its side effects, its completion flag and its output
  in one transaction before the next step starts
- a resumed instance skips completed steps and reuses their outputs
- failures are classified and retried per ``RetryPolicy``
- cancellation is checked at step boundaries and interrupts backoff waits
- the completion callback runs exactly once per instance, in the same
  transaction that records its delivery
"""

from __future__ import annotations

import asyncio
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from github_mirror.config import WorkflowConfig, get_settings
from github_mirror.db.models import WorkflowStatus
from github_mirror.db.repositories import WorkflowRepository
from github_mirror.github.exceptions import GitHubRateLimitError
from github_mirror.logging import bind_workflow, get_logger

from .definition import (
    BOOTSTRAP_WORKFLOW,
    RetryHookFn,
    StepContext,
    StepDefinition,
    WorkflowDefinition,
)
from .results import WorkflowCompletion, WorkflowResult, WorkflowResultKind
from .retry import FailureKind, RetryPolicy, classify_failure

logger = get_logger(__name__)

_STATUS_FOR_RESULT = {
    WorkflowResultKind.SUCCESS: WorkflowStatus.COMPLETED,
    WorkflowResultKind.ERROR: WorkflowStatus.FAILED,
    WorkflowResultKind.CANCELED: WorkflowStatus.CANCELED,
}


class WorkflowNotFoundError(LookupError):
    """Raised when a workflow id does not exist."""


class _StepRecord:
    """Snapshot of a persisted step row taken when a run starts."""

    __slots__ = ("completed", "output")

    def __init__(self, completed: bool, output: Any) -> None:
        self.completed = completed
        self.output = output


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class WorkflowOrchestrator:
    """Schedules, runs, resumes and cancels durable workflow instances.

    Usage:
        orchestrator = build_bootstrap_orchestrator(get_session_factory(), executor)
        workflow_id = await orchestrator.start_bootstrap(42, "acme/widgets", "repo:42")
        result = await orchestrator.wait(workflow_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        definitions: list[WorkflowDefinition] | None = None,
        *,
        config: WorkflowConfig | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            session_factory: Factory for the sessions each step runs in
            definitions: Workflows this orchestrator can run
            config: Workflow config (defaults to settings); retry policy and cancel polling
            retry_policy: Explicit retry policy, overriding ``config``
        """
        self._session_factory = session_factory
        self._definitions: dict[str, WorkflowDefinition] = {}
        for definition in definitions or []:
            self.register(definition)
        workflow_config = config or get_settings().workflow
        self._retry_policy = retry_policy or RetryPolicy.from_config(workflow_config)
        self._cancel_poll_ms = workflow_config.cancel_poll_ms
        self._tasks: dict[str, asyncio.Task[WorkflowResult]] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._start_locks: dict[str, asyncio.Lock] = {}

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def register(self, definition: WorkflowDefinition) -> None:
        self._definitions[definition.name] = definition

    def _definition(self, name: str) -> WorkflowDefinition:
        try:
            return self._definitions[name]
        except KeyError:
            raise LookupError(f"No workflow named '{name}' is registered") from None

    def _cancel_event(self, workflow_id: str) -> asyncio.Event:
        return self._cancel_events.setdefault(workflow_id, asyncio.Event())

    # -------------------------------------------------------------------------
    # Starting and scheduling
    # -------------------------------------------------------------------------

    async def start(
        self,
        name: str,
        args: dict[str, Any],
        *,
        context: dict[str, Any] | None = None,
        lock_key: str | None = None,
    ) -> str:
        """Persist a new instance of workflow ``name`` and schedule it.

        If ``lock_key`` is given and an unfinished instance already holds
        it, that instance's id is returned and nothing new is started.
        Concurrent starts for one key are serialized in this process; the
        partial unique index on ``workflow_instances.lock_key`` settles
        races with other processes.

        Returns:
            The workflow id
        """
        definition = self._definition(name)
        if lock_key is None:
            return await self._create_and_schedule(definition, args, context, None)

        async with self._start_locks.setdefault(lock_key, asyncio.Lock()):
            existing_id = await self._active_instance_id(lock_key)
            if existing_id is not None:
                return existing_id
            try:
                return await self._create_and_schedule(definition, args, context, lock_key)
            except IntegrityError:
                existing_id = await self._active_instance_id(lock_key)
                if existing_id is None:
                    raise
                return existing_id

    async def _active_instance_id(self, lock_key: str) -> str | None:
        async with self._session_factory() as session:
            existing = await WorkflowRepository(session).get_active_for_lock_key(lock_key)
        if existing is None:
            return None
        logger.info(
            "Workflow {} already active for {}, not starting another", existing.id, lock_key
        )
        return existing.id

    async def _create_and_schedule(
        self,
        definition: WorkflowDefinition,
        args: dict[str, Any],
        context: dict[str, Any] | None,
        lock_key: str | None,
    ) -> str:
        async with self._session_factory() as session:
            instance = await WorkflowRepository(session).create_instance(
                definition.name,
                definition.step_names,
                args=args,
                context=context or {},
                lock_key=lock_key,
            )
            workflow_id = instance.id
            await session.commit()

        bind_workflow(workflow_id, lock_key).info("Started workflow {}", definition.name)
        self._schedule(workflow_id)
        return workflow_id

    async def start_bootstrap(self, repository_id: int, full_name: str, lock_key: str) -> str:
        """Start (or join) the bootstrap workflow for a repository.

        The sync job identified by ``lock_key`` must already exist; the
        workflow reports its progress there.

        Returns:
            The workflow id
        """
        return await self.start(
            BOOTSTRAP_WORKFLOW,
            {"repository_id": repository_id, "full_name": full_name, "lock_key": lock_key},
            context={"lock_key": lock_key},
            lock_key=lock_key,
        )

    def _schedule(self, workflow_id: str) -> asyncio.Task[WorkflowResult]:
        task = self._tasks.get(workflow_id)
        if task is not None and not task.done():
            return task
        task = asyncio.create_task(self.run(workflow_id), name=f"workflow-{workflow_id}")
        task.add_done_callback(self._on_task_done)
        self._tasks[workflow_id] = task
        return task

    @staticmethod
    def _on_task_done(task: asyncio.Task[WorkflowResult]) -> None:
        if task.cancelled():
            logger.warning("Workflow task {} was cancelled", task.get_name())
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error("Workflow task {} crashed", task.get_name())

    async def resume_incomplete(self) -> list[str]:
        """Schedule every instance that is unfinished or has an undelivered completion.

        Returns:
            Ids of the scheduled instances
        """
        async with self._session_factory() as session:
            instances = await WorkflowRepository(session).list_resumable()
            workflow_ids = [instance.id for instance in instances]

        for workflow_id in workflow_ids:
            self._schedule(workflow_id)
        if workflow_ids:
            logger.info("Resuming {} incomplete workflow(s)", len(workflow_ids))
        return workflow_ids

    async def wait(self, workflow_id: str) -> WorkflowResult:
        """Wait for a scheduled instance and return its result.

        Instances not scheduled in this process return their stored
        result if they are already finished.

        Raises:
            WorkflowNotFoundError: If the id is unknown
            LookupError: If the instance is unfinished and not scheduled here
        """
        task = self._tasks.get(workflow_id)
        if task is not None:
            try:
                return await task
            finally:
                if task.done():
                    self._tasks.pop(workflow_id, None)

        async with self._session_factory() as session:
            instance = await WorkflowRepository(session).get_by_id(workflow_id)
        if instance is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        if not instance.status.is_terminal:
            raise LookupError(f"Workflow {workflow_id} is not running in this process")
        return WorkflowResult(WorkflowResultKind(instance.result_kind), instance.error)

    async def cancel(self, workflow_id: str) -> bool:
        """Request cancellation of an unfinished instance.

        Returns:
            False if the instance is unknown or already finished
        """
        async with self._session_factory() as session:
            accepted = await WorkflowRepository(session).request_cancel(workflow_id)
            await session.commit()
        if accepted:
            self._cancel_event(workflow_id).set()
            logger.info("Cancellation requested for workflow {}", workflow_id)
        return accepted

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def run(self, workflow_id: str) -> WorkflowResult:
        """Execute or resume an instance in the current task.

        Raises:
            WorkflowNotFoundError: If the id is unknown
        """
        async with self._session_factory() as session:
            repo = WorkflowRepository(session)
            instance = await repo.get_with_steps(workflow_id)
            if instance is None:
                raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")

            definition = self._definition(instance.name)
            lock_key = instance.lock_key
            args = dict(instance.args)
            context = dict(instance.context)
            records = {
                step.name: _StepRecord(step.completed, step.output) for step in instance.steps
            }

            result: WorkflowResult | None
            if instance.status.is_terminal:
                result = WorkflowResult(WorkflowResultKind(instance.result_kind), instance.error)
                delivered = instance.completion_delivered
            else:
                if instance.cancel_requested:
                    self._cancel_event(workflow_id).set()
                if instance.status is WorkflowStatus.PENDING:
                    await repo.set_status(workflow_id, WorkflowStatus.RUNNING)
                    await session.commit()
                result = None
                delivered = False

        log = bind_workflow(workflow_id, lock_key)

        if result is None:
            log.info("Running workflow {}", definition.name)
            result = await self._execute(definition, workflow_id, args, context, records)
            async with self._session_factory() as session:
                await WorkflowRepository(session).set_status(
                    workflow_id,
                    _STATUS_FOR_RESULT[result.kind],
                    result_kind=result.kind.value,
                    error=result.error,
                )
                await session.commit()
            log.info("Workflow {} finished: {}", definition.name, result.kind.value)

        if not delivered:
            await self._deliver_completion(definition, workflow_id, result, context)
        self._cancel_events.pop(workflow_id, None)
        return result

    async def _cancel_requested(self, workflow_id: str) -> bool:
        event = self._cancel_event(workflow_id)
        if event.is_set():
            return True
        async with self._session_factory() as session:
            instance = await WorkflowRepository(session).get_by_id(workflow_id)
            requested = instance is not None and instance.cancel_requested
        if requested:
            event.set()
        return requested

    async def _execute(
        self,
        definition: WorkflowDefinition,
        workflow_id: str,
        args: dict[str, Any],
        context: dict[str, Any],
        records: dict[str, _StepRecord],
    ) -> WorkflowResult:
        outputs: dict[str, Any] = {}

        for position, step in enumerate(definition.steps):
            record = records.get(step.name)
            if record is not None and record.completed:
                outputs[step.name] = step.decode(record.output)
                continue

            # Cancellation is honoured from the second step on
            if position > 0 and await self._cancel_requested(workflow_id):
                bind_workflow(workflow_id, context.get("lock_key")).info(
                    "Workflow canceled before step {}", step.name
                )
                return WorkflowResult.canceled()

            if step.skip_if is not None and step.skip_if(outputs):
                async with self._session_factory() as session:
                    await WorkflowRepository(session).complete_step(
                        workflow_id, step.name, None, skipped=True
                    )
                    await session.commit()
                outputs[step.name] = None
                logger.debug("Skipped step {} of workflow {}", step.name, workflow_id)
                continue

            outcome = await self._run_step(definition, step, workflow_id, args, context, outputs)
            if isinstance(outcome, WorkflowResult):
                return outcome
            outputs[step.name] = outcome

        return WorkflowResult.success()

    async def _run_step(
        self,
        definition: WorkflowDefinition,
        step: StepDefinition,
        workflow_id: str,
        args: dict[str, Any],
        context: dict[str, Any],
        outputs: dict[str, Any],
    ) -> Any:
        """Run one step until it succeeds or the workflow must stop.

        Returns:
            The step output, or a terminal ``WorkflowResult``
        """
        policy = self._retry_policy
        log = bind_workflow(workflow_id, context.get("lock_key")).bind(step=step.name)
        attempts = 0
        rate_limit_waits = 0

        while True:
            try:
                async with self._session_factory() as session:
                    ctx = StepContext(workflow_id, args, outputs, session)
                    output = await step.run(ctx)
                    await WorkflowRepository(session).complete_step(
                        workflow_id, step.name, step.encode(output)
                    )
                    await session.commit()
                log.debug("Step completed")
                return output
            except Exception as error:
                message = _error_message(error)
                kind = classify_failure(error)
                async with self._session_factory() as session:
                    await WorkflowRepository(session).record_step_failure(
                        workflow_id, step.name, message
                    )
                    await session.commit()

                if kind is FailureKind.FATAL:
                    log.error("Step failed permanently: {}", message)
                    return WorkflowResult.failed(message)

                if isinstance(error, GitHubRateLimitError):
                    rate_limit_waits += 1
                    if policy.rate_limit_waits_exhausted(rate_limit_waits):
                        log.error("Gave up after {} rate limit waits", rate_limit_waits - 1)
                        return WorkflowResult.failed(message)
                    delay_ms = error.retry_after_ms
                else:
                    attempts += 1
                    if policy.attempts_exhausted(attempts):
                        log.error("Step failed after {} attempts: {}", attempts, message)
                        return WorkflowResult.failed(message)
                    delay_ms = policy.backoff_ms(attempts)

                log.warning("Step failed ({}), retrying in {}ms: {}", kind.value, delay_ms, message)
                await self._run_retry_hook(definition.on_retry, context, message)
                if await self._wait_or_cancel(workflow_id, delay_ms):
                    log.info("Workflow canceled during backoff")
                    return WorkflowResult.canceled()
                await self._run_retry_hook(definition.on_retry_resumed, context, None)

    async def _run_retry_hook(
        self,
        hook: RetryHookFn | None,
        context: dict[str, Any],
        error: str | None,
    ) -> None:
        if hook is None:
            return
        async with self._session_factory() as session:
            await hook(session, context, error)
            await session.commit()

    async def _wait_or_cancel(self, workflow_id: str, delay_ms: int) -> bool:
        """Sleep for ``delay_ms`` unless cancellation is requested first.

        A ``cancel`` from this orchestrator wakes the wait at once. A cancel
        flag written by another process is re-read every ``cancel_poll_ms``
        and once more when the wait ends, so a retry never starts after it.

        Returns:
            True if the wait ended because of cancellation
        """
        event = self._cancel_event(workflow_id)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(delay_ms, 0) / 1000
        poll_s = self._cancel_poll_ms / 1000

        while True:
            remaining = deadline - loop.time()
            if remaining > 0:
                try:
                    await asyncio.wait_for(event.wait(), timeout=min(remaining, poll_s))
                    return True
                except TimeoutError:
                    pass
            if await self._cancel_requested(workflow_id):
                return True
            if loop.time() >= deadline:
                return False

    async def _deliver_completion(
        self,
        definition: WorkflowDefinition,
        workflow_id: str,
        result: WorkflowResult,
        context: dict[str, Any],
    ) -> None:
        """Invoke ``on_complete`` at most once across crashes and resumes."""
        async with self._session_factory() as session:
            repo = WorkflowRepository(session)
            instance = await repo.get_by_id(workflow_id)
            if instance is None or instance.completion_delivered:
                return
            if definition.on_complete is not None:
                await definition.on_complete(
                    session, WorkflowCompletion(workflow_id, result, context)
                )
            await repo.mark_completion_delivered(workflow_id)
            await session.commit()
