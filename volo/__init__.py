"""Volo: workflow orchestration and autonomous agent execution."""

from __future__ import annotations

from typing import Optional

from .agents import AgentRunner
from .config import VoloConfig, load_config
from .contracts import AgentRunConfig, RunStatus, StepStatus, StepType, WorkflowType
from .ledger import Ledger
from .persistence import WorkflowRun, get_repository
from .worker import RunSupervisor, StartedRun

__version__ = "0.1.0"

_supervisor: RunSupervisor | None = None


def _default_supervisor() -> RunSupervisor:
    global _supervisor
    if _supervisor is None:
        _supervisor = RunSupervisor(AgentRunner.from_config())
    return _supervisor


async def start_run(
    config: AgentRunConfig, supervisor: Optional[RunSupervisor] = None
) -> StartedRun:
    """Create a run and execute it in the background."""
    return await (supervisor or _default_supervisor()).start_run(config)


async def run_agent(config: AgentRunConfig, runner: Optional[AgentRunner] = None) -> WorkflowRun:
    """Execute a run in the foreground and return its final record."""
    if runner is not None:
        return await runner.run(config)
    runner = AgentRunner.from_config()
    try:
        return await runner.run(config)
    finally:
        await runner.aclose()


__all__ = [
    "AgentRunConfig",
    "AgentRunner",
    "Ledger",
    "RunStatus",
    "RunSupervisor",
    "StartedRun",
    "StepStatus",
    "StepType",
    "VoloConfig",
    "WorkflowRun",
    "WorkflowType",
    "get_repository",
    "load_config",
    "run_agent",
    "start_run",
]
