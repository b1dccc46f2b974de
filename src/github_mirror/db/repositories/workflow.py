"""Repository for the durable workflow step log."""

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from github_mirror.db.models import WorkflowInstance, WorkflowStatus, WorkflowStep

from .base import BaseRepository

_ACTIVE_STATUSES = (WorkflowStatus.PENDING, WorkflowStatus.RUNNING)


class WorkflowRepository(BaseRepository[WorkflowInstance]):
    """Persistence for workflow instances and their ordered step rows.

    Step rows for the whole pipeline are written together with the
    instance, so the log always describes every step the workflow will
    attempt and which of them are already done.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, WorkflowInstance)

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    async def get_with_steps(self, workflow_id: str) -> WorkflowInstance | None:
        """Load an instance together with its step log (ordered by position)."""
        stmt = (
            select(WorkflowInstance)
            .where(WorkflowInstance.id == workflow_id)
            .options(selectinload(WorkflowInstance.steps))
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_for_lock_key(self, lock_key: str) -> WorkflowInstance | None:
        """Get the pending or running instance reporting to ``lock_key``, if any."""
        stmt = (
            select(WorkflowInstance)
            .where(
                WorkflowInstance.lock_key == lock_key,
                WorkflowInstance.status.in_(_ACTIVE_STATUSES),
            )
            .order_by(WorkflowInstance.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_resumable(self) -> list[WorkflowInstance]:
        """Instances that still need work: unfinished, or finished without a delivered callback."""
        stmt = (
            select(WorkflowInstance)
            .where(
                or_(
                    WorkflowInstance.status.in_(_ACTIVE_STATUSES),
                    WorkflowInstance.completion_delivered.is_(False),
                )
            )
            .order_by(WorkflowInstance.created_at)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_step(self, workflow_id: str, name: str) -> WorkflowStep | None:
        stmt = select(WorkflowStep).where(
            WorkflowStep.workflow_id == workflow_id,
            WorkflowStep.name == name,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Create/Update Methods
    # -------------------------------------------------------------------------

    async def create_instance(
        self,
        name: str,
        step_names: Sequence[str],
        *,
        args: dict[str, Any],
        context: dict[str, Any],
        lock_key: str | None = None,
    ) -> WorkflowInstance:
        """Persist a new pending instance and one incomplete row per step."""
        now = datetime.now(UTC)
        instance = WorkflowInstance(
            id=uuid.uuid4().hex,
            name=name,
            args=args,
            context=context,
            lock_key=lock_key,
            status=WorkflowStatus.PENDING,
            cursor=0,
            created_at=now,
            updated_at=now,
        )
        instance.steps = [
            WorkflowStep(position=position, name=step_name)
            for position, step_name in enumerate(step_names)
        ]
        self.add(instance)
        await self.flush()
        return instance

    async def complete_step(
        self,
        workflow_id: str,
        name: str,
        output: Any,
        *,
        skipped: bool = False,
    ) -> WorkflowStep:
        """Record a step as done and advance the instance cursor past it.

        Raises:
            LookupError: If the step row does not exist
        """
        step = await self.get_step(workflow_id, name)
        if step is None:
            raise LookupError(f"Workflow {workflow_id} has no step '{name}'")

        step.completed = True
        step.skipped = skipped
        step.output = output
        step.completed_at = datetime.now(UTC)

        instance = await self.get_by_id(workflow_id)
        if instance is not None:
            instance.cursor = max(instance.cursor, step.position + 1)
            instance.updated_at = datetime.now(UTC)
        await self.flush()
        return step

    async def record_step_failure(self, workflow_id: str, name: str, error: str) -> int:
        """Count a failed attempt on a step.

        Returns:
            Total attempts recorded for the step (0 if the step is unknown)
        """
        step = await self.get_step(workflow_id, name)
        if step is None:
            return 0
        step.attempts += 1
        step.last_error = error
        await self.flush()
        return step.attempts

    async def set_status(
        self,
        workflow_id: str,
        status: WorkflowStatus,
        *,
        result_kind: str | None = None,
        error: str | None = None,
    ) -> WorkflowInstance | None:
        instance = await self.get_by_id(workflow_id)
        if instance is None:
            return None
        now = datetime.now(UTC)
        instance.status = status
        instance.updated_at = now
        if status.is_terminal:
            instance.result_kind = result_kind
            instance.error = error
            instance.completed_at = now
        await self.flush()
        return instance

    async def request_cancel(self, workflow_id: str) -> bool:
        """Persist a cancellation request.

        Returns:
            True if the instance exists and is not yet terminal
        """
        instance = await self.get_by_id(workflow_id)
        if instance is None or instance.status.is_terminal:
            return False
        instance.cancel_requested = True
        instance.updated_at = datetime.now(UTC)
        await self.flush()
        return True

    async def mark_completion_delivered(self, workflow_id: str) -> None:
        instance = await self.get_by_id(workflow_id)
        if instance is not None:
            instance.completion_delivered = True
            await self.flush()
