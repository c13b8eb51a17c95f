from __future__ import annotations

import logging
from typing import Optional

from pydantic_ai import RunContext

from ...contracts import StepStatus, StepType
from ..deps import AgentDeps

logger = logging.getLogger(__name__)


async def report_progress(
    ctx: RunContext[AgentDeps],
    processed: int,
    total: Optional[int] = None,
    message: Optional[str] = None,
) -> str:
    """Report how many items have been processed so far.

    Args:
        processed: Items handled so far.
        total: Total items expected, if known.
        message: Short status note.
    """
    deps = ctx.deps
    await deps.ledger.record_step(
        deps.run_id,
        StepType.THINKING,
        StepStatus.COMPLETED,
        tool="update_progress",
        output={"processed": processed, "total": total, "message": message},
    )
    changes = {"processed_items": processed}
    if total is not None:
        changes["total_items"] = total
    try:
        await deps.ledger.update_run(deps.run_id, **changes)
    except Exception:
        logger.exception(f"Failed to store progress for run {deps.run_id}")
    return "Progress recorded"
