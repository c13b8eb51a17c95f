"""Run-ledger wrapper around cursor-driven platform syncs."""

from __future__ import annotations

import logging
from typing import Optional

from ..constants import ERROR_TEXT_LIMIT, SYNC_ERROR_STEP_LIMIT
from ..contracts import (
    RunStatus,
    StepStatus,
    StepType,
    SyncTaskConfig,
    Trigger,
    WorkflowType,
)
from ..ledger import Ledger
from ..persistence import WorkflowRun
from .cursors import CursorEngine, FetchPage, ProcessItem, SyncResult

logger = logging.getLogger(__name__)


async def run_sync_workflow(
    ledger: Ledger,
    engine: CursorEngine,
    task: SyncTaskConfig,
    fetch_page: FetchPage,
    process_item: ProcessItem,
    *,
    trigger: Trigger = Trigger.USER,
    template_id: Optional[str] = None,
) -> WorkflowRun:
    """Execute one sync as a ledger run.

    The run records a ``sync_page`` step for the attempt, one ``error`` step
    per collected error (capped), and counters mapped from the ``SyncResult``.
    A run with errors and no successful items ends ``failed``. Exceptions
    from the sync itself mark the run failed and are re-raised.
    """
    run = await ledger.create_run(
        WorkflowType.SYNC,
        status=RunStatus.RUNNING,
        template_id=template_id,
        platform_account_id=task.platform_account_id,
        config=task.model_dump(mode="json"),
        trigger=trigger,
    )
    page_step = await ledger.record_step(
        run.id,
        StepType.SYNC_PAGE,
        StepStatus.RUNNING,
        tool=task.data_type.value,
        input={"max_pages": task.max_pages},
    )

    try:
        result: SyncResult = await engine.sync(
            task.platform_account_id,
            task.data_type.value,
            fetch_page,
            process_item,
            max_pages=task.max_pages,
        )
    except Exception as exc:
        message = str(exc)[:ERROR_TEXT_LIMIT]
        logger.error(f"Sync run {run.id} failed: {message}")
        if page_step is not None:
            await ledger.finish_step(page_step.id, StepStatus.FAILED, error=message)
        await ledger.record_step(
            run.id, StepType.ERROR, StepStatus.FAILED, tool="sync", error=message
        )
        await ledger.update_run(
            run.id, status=RunStatus.FAILED, errors=[message], error_items=1
        )
        raise

    total = result.success + result.skipped + len(result.errors)
    status = (
        RunStatus.FAILED if result.errors and result.success == 0 else RunStatus.COMPLETED
    )
    if page_step is not None:
        await ledger.finish_step(
            page_step.id,
            StepStatus.COMPLETED if status == RunStatus.COMPLETED else StepStatus.FAILED,
            output=result.as_dict(),
        )
    for error in result.errors[:SYNC_ERROR_STEP_LIMIT]:
        await ledger.record_step(
            run.id, StepType.ERROR, StepStatus.FAILED, tool="sync", error=error
        )

    updated = await ledger.update_run(
        run.id,
        status=status,
        total_items=total,
        processed_items=total,
        success_items=result.success,
        skipped_items=result.skipped,
        error_items=len(result.errors),
        errors=result.errors[:50],
        result=result.as_dict(),
    )
    logger.info(f"Sync run {run.id} finished {status.value}: {result.as_dict()}")
    return updated or run
