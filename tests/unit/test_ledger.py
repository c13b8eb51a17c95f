import pytest

from volo.contracts import RunStatus, StepStatus, StepType, WorkflowType
from volo.errors import InvalidTransitionError
from volo.ledger import Ledger


@pytest.mark.asyncio
async def test_create_and_complete_run(ledger):
    run = await ledger.create_run(WorkflowType.SEARCH)
    assert run.status == "pending"
    assert run.started_at is None

    running = await ledger.update_run(run.id, status=RunStatus.RUNNING)
    assert running.status == "running"
    assert running.started_at is not None

    done = await ledger.update_run(run.id, status=RunStatus.COMPLETED, success_items=3)
    assert done.status == "completed"
    assert done.completed_at is not None
    assert done.success_items == 3


@pytest.mark.asyncio
async def test_update_missing_run_returns_none(ledger):
    assert await ledger.update_run("missing", status=RunStatus.RUNNING) is None


@pytest.mark.asyncio
async def test_terminal_run_cannot_restart(ledger):
    run = await ledger.create_run(WorkflowType.ENRICH, status=RunStatus.RUNNING)
    await ledger.update_run(run.id, status=RunStatus.FAILED)
    with pytest.raises(InvalidTransitionError):
        await ledger.update_run(run.id, status=RunStatus.RUNNING)
    stored = await ledger.get_run(run.id)
    assert stored.status == "failed"


@pytest.mark.asyncio
async def test_create_run_rejects_terminal_status(ledger):
    with pytest.raises(ValueError):
        await ledger.create_run(WorkflowType.SEARCH, status=RunStatus.COMPLETED)


@pytest.mark.asyncio
async def test_step_indexes_strictly_increase(ledger):
    run = await ledger.create_run(WorkflowType.SEARCH, status=RunStatus.RUNNING)
    for step_type in (StepType.THINKING, StepType.TOOL_CALL, StepType.WEB_SEARCH):
        await ledger.create_step(run.id, step_type)

    steps = await ledger.list_steps(run.id)
    assert [s.step_index for s in steps] == [0, 1, 2]
    assert [s.step_type for s in steps] == ["thinking", "tool_call", "web_search"]


@pytest.mark.asyncio
async def test_step_index_resumes_from_store(repo):
    first = Ledger(repo)
    run = await first.create_run(WorkflowType.SEARCH, status=RunStatus.RUNNING)
    await first.create_step(run.id, StepType.THINKING)
    await first.create_step(run.id, StepType.THINKING)

    second = Ledger(repo)
    step = await second.create_step(run.id, StepType.ERROR, StepStatus.FAILED)
    assert step.step_index == 2


@pytest.mark.asyncio
async def test_terminal_run_releases_index_counter(ledger):
    run = await ledger.create_run(WorkflowType.SEARCH, status=RunStatus.RUNNING)
    await ledger.create_step(run.id, StepType.THINKING)
    await ledger.update_run(run.id, status=RunStatus.COMPLETED)
    assert run.id not in ledger._next_index

    late = await ledger.create_step(run.id, StepType.ERROR, StepStatus.FAILED)
    assert late.step_index == 1


@pytest.mark.asyncio
async def test_finish_step_only_from_open_status(ledger):
    run = await ledger.create_run(WorkflowType.SYNC, status=RunStatus.RUNNING)
    step = await ledger.create_step(run.id, StepType.SYNC_PAGE, StepStatus.RUNNING)

    finished = await ledger.finish_step(step.id, StepStatus.COMPLETED, output={"added": 2})
    assert finished.status == "completed"
    assert finished.output == {"added": 2}

    with pytest.raises(InvalidTransitionError):
        await ledger.finish_step(step.id, StepStatus.FAILED)


@pytest.mark.asyncio
async def test_record_step_swallows_store_failures(ledger, monkeypatch):
    run = await ledger.create_run(WorkflowType.SEARCH, status=RunStatus.RUNNING)

    async def broken_save(step):
        raise RuntimeError("disk full")

    monkeypatch.setattr(ledger.repository, "save_step", broken_save)
    assert await ledger.record_step(run.id, StepType.THINKING) is None
