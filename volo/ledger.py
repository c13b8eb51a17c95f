"""Append-only record of workflow runs and their steps."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .contracts import (
    RunStatus,
    StepStatus,
    StepType,
    Trigger,
    WorkflowType,
    check_run_transition,
    check_step_transition,
)
from .persistence import VoloRepository, WorkflowRun, WorkflowStep, get_repository
from .persistence.models import utcnow

logger = logging.getLogger(__name__)


class Ledger:
    """Writes runs and steps through a repository.

    Each run has a single writer (its own execution), so step indexes are
    allocated from an in-process counter seeded from the store.
    """

    def __init__(self, repository: VoloRepository | None = None) -> None:
        self.repository = repository or get_repository()
        self._next_index: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Runs
    async def create_run(
        self,
        workflow_type: WorkflowType | str,
        *,
        status: RunStatus = RunStatus.PENDING,
        template_id: Optional[str] = None,
        platform_account_id: Optional[str] = None,
        config: Optional[dict[str, Any]] = None,
        trigger: Trigger = Trigger.USER,
        model: Optional[str] = None,
    ) -> WorkflowRun:
        if status not in (RunStatus.PENDING, RunStatus.RUNNING):
            raise ValueError(f"Runs start as pending or running, not {status}")
        run = WorkflowRun(
            workflow_type=workflow_type,
            status=status,
            template_id=template_id,
            platform_account_id=platform_account_id,
            config=config or {},
            trigger=trigger,
            model=model,
            started_at=utcnow() if status == RunStatus.RUNNING else None,
        )
        await self.repository.save_run(run)
        self._next_index[run.id] = 0
        logger.info(f"Created {run.workflow_type} run {run.id} ({run.status})")
        return run

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        return await self.repository.get_run(run_id)

    async def list_runs(self, **filters: Any) -> list[WorkflowRun]:
        return await self.repository.list_runs(**filters)

    async def update_run(self, run_id: str, **changes: Any) -> WorkflowRun | None:
        """Apply ``changes`` to a run.

        Returns ``None`` when the run does not exist. Status changes are
        checked against the run state machine.
        """
        run = await self.repository.get_run(run_id)
        if run is None:
            logger.warning(f"Update for unknown run {run_id} ignored")
            return None

        target = changes.get("status")
        if target is not None:
            check_run_transition(run.status, target)
            target = RunStatus(target)
            if target == RunStatus.RUNNING and run.started_at is None:
                changes.setdefault("started_at", utcnow())
            if target.is_terminal:
                changes.setdefault("completed_at", utcnow())
            changes["status"] = target.value

        updated = WorkflowRun.model_validate(
            {**run.model_dump(), **changes, "updated_at": utcnow()}
        )
        await self.repository.save_run(updated)
        if target is not None and target.is_terminal:
            # Late steps fall back to max_step_index in the store.
            self._next_index.pop(run_id, None)
        return updated

    # ------------------------------------------------------------------
    # Steps
    async def next_step_index(self, run_id: str) -> int:
        if run_id not in self._next_index:
            highest = await self.repository.max_step_index(run_id)
            self._next_index.setdefault(run_id, 0 if highest is None else highest + 1)
        index = self._next_index[run_id]
        self._next_index[run_id] = index + 1
        return index

    async def create_step(
        self,
        run_id: str,
        step_type: StepType | str,
        status: StepStatus | str = StepStatus.COMPLETED,
        *,
        tool: Optional[str] = None,
        url: Optional[str] = None,
        contact_id: Optional[str] = None,
        input: Optional[dict[str, Any]] = None,
        output: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> WorkflowStep:
        step = WorkflowStep(
            workflow_run_id=run_id,
            step_index=await self.next_step_index(run_id),
            step_type=StepType(step_type).value,
            status=status,
            tool=tool,
            url=url,
            contact_id=contact_id,
            input=input,
            output=output,
            error=error,
            duration_ms=duration_ms,
        )
        await self.repository.save_step(step)
        logger.debug(
            f"Run {run_id} step {step.step_index}: {step.step_type} ({step.status})"
        )
        return step

    async def record_step(
        self, run_id: str, step_type: StepType | str, *args: Any, **kwargs: Any
    ) -> WorkflowStep | None:
        """Like ``create_step`` but a storage failure is logged, not raised."""
        try:
            return await self.create_step(run_id, step_type, *args, **kwargs)
        except Exception:
            logger.exception(f"Failed to record {step_type} step for run {run_id}")
            return None

    async def finish_step(
        self,
        step_id: str,
        status: StepStatus | str,
        *,
        output: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> WorkflowStep | None:
        """Move a pending or running step to a terminal status."""
        step = await self.repository.get_step(step_id)
        if step is None:
            return None
        check_step_transition(step.status, StepStatus(status).value)
        changes: dict[str, Any] = {"status": StepStatus(status).value}
        if output is not None:
            changes["output"] = output
        if error is not None:
            changes["error"] = error
        if duration_ms is not None:
            changes["duration_ms"] = duration_ms
        finished = step.model_copy(update=changes)
        await self.repository.save_step(finished)
        return finished

    async def list_steps(self, run_id: str) -> list[WorkflowStep]:
        return await self.repository.list_steps(run_id)
