"""Background execution of agent runs with bounded concurrency."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .agents.runner import AgentRunner
from .constants import ERROR_TEXT_LIMIT
from .contracts import AgentRunConfig, RunStatus, StepStatus, StepType
from .persistence import WorkflowRun

logger = logging.getLogger(__name__)


@dataclass
class StartedRun:
    run_id: str
    status: str


class RunSupervisor:
    """Schedules agent runs as asyncio tasks, at most ``max_concurrent`` at once."""

    def __init__(self, runner: AgentRunner, max_concurrent: Optional[int] = None) -> None:
        self.runner = runner
        self.ledger = runner.ledger
        limit = max_concurrent or runner.config.agent.max_concurrent_runs
        self._semaphore = asyncio.Semaphore(limit)
        self._tasks: dict[str, asyncio.Task[WorkflowRun]] = {}

    @property
    def active_runs(self) -> list[str]:
        return [run_id for run_id, task in self._tasks.items() if not task.done()]

    async def start_run(self, config: AgentRunConfig) -> StartedRun:
        """Create the run as pending and schedule it; returns before the loop starts."""
        run = await self.ledger.create_run(
            config.workflow_type,
            template_id=config.template_id,
            config=config.model_dump(mode="json"),
            trigger=config.trigger,
            model=config.model,
        )
        self.submit(config, run.id)
        return StartedRun(run_id=run.id, status=run.status)

    def submit(self, config: AgentRunConfig, run_id: str) -> asyncio.Task[WorkflowRun]:
        task = asyncio.create_task(self._execute(config, run_id), name=f"volo-run-{run_id}")
        self._tasks[run_id] = task
        task.add_done_callback(lambda t: self._on_done(run_id, t))
        return task

    async def run(self, config: AgentRunConfig) -> WorkflowRun:
        """Start a run and wait for it to finish."""
        started = await self.start_run(config)
        return await self.wait(started.run_id)

    async def _execute(self, config: AgentRunConfig, run_id: str) -> WorkflowRun:
        try:
            async with self._semaphore:
                return await self.runner.run(config, run_id=run_id)
        except asyncio.CancelledError:
            await self._mark_cancelled(run_id)
            raise
        except Exception as exc:
            logger.exception(f"Run {run_id} task crashed")
            await self._mark_crashed(run_id, exc)
            raise

    def _on_done(self, run_id: str, task: asyncio.Task[WorkflowRun]) -> None:
        self._tasks.pop(run_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Run {run_id} task ended with {type(exc).__name__}: {exc}")

    async def _mark_cancelled(self, run_id: str) -> None:
        # Runs cancelled while still queued never reached the runner.
        try:
            run = await self.ledger.get_run(run_id)
            if run is not None and run.status == RunStatus.PENDING.value:
                await self.ledger.update_run(run_id, status=RunStatus.CANCELLED)
        except Exception:
            logger.exception(f"Failed to mark run {run_id} as cancelled")

    async def _mark_crashed(self, run_id: str, exc: BaseException) -> None:
        message = (str(exc) or type(exc).__name__)[:ERROR_TEXT_LIMIT]
        try:
            run = await self.ledger.get_run(run_id)
            if run is None or RunStatus(run.status).is_terminal:
                return
            await self.ledger.record_step(
                run_id, StepType.ERROR, StepStatus.FAILED, tool="run_supervisor", error=message
            )
            await self.ledger.update_run(
                run_id, status=RunStatus.FAILED, errors=[message], error_items=1
            )
        except Exception:
            logger.exception(f"Failed to mark crashed run {run_id} as failed")

    async def cancel(self, run_id: str) -> bool:
        task = self._tasks.get(run_id)
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def wait(self, run_id: str) -> WorkflowRun:
        task = self._tasks.get(run_id)
        if task is not None:
            try:
                return await task
            except Exception:
                logger.debug(f"Run {run_id} ended with an exception")
        run = await self.ledger.get_run(run_id)
        if run is None:
            raise KeyError(f"Run {run_id} not found")
        return run

    async def shutdown(self, cancel: bool = False) -> None:
        """Wait for, or cancel, every run still in flight."""
        tasks = list(self._tasks.values())
        if cancel:
            for task in tasks:
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
