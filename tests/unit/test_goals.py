import pytest

from volo.contracts import GoalStatus, GoalType, RunStatus, StepStatus, StepType, WorkflowType
from volo.goals import GoalTracker, compute_delta
from volo.persistence import WorkflowStep


def _step(step_type: StepType, status: StepStatus = StepStatus.COMPLETED, index: int = 0) -> WorkflowStep:
    return WorkflowStep(
        workflow_run_id="run", step_index=index, step_type=step_type.value, status=status
    )


def test_lead_generation_delta():
    steps = [
        _step(StepType.CONTACT_CREATE),
        _step(StepType.CONTACT_CREATE),
        _step(StepType.CONTACT_CREATE, StepStatus.SKIPPED),
        _step(StepType.CONTACT_MERGE),
    ]
    assert compute_delta(GoalType.LEAD_GENERATION, WorkflowType.SEARCH, steps) == 2
    assert compute_delta(GoalType.LEAD_GENERATION, WorkflowType.ENRICH, steps) == 1
    assert compute_delta(GoalType.LEAD_GENERATION, WorkflowType.PRUNE, steps) == 0


def test_audience_growth_prefers_follower_delta():
    steps = [_step(StepType.CONTACT_CREATE)]
    assert compute_delta("audience_growth", "search", steps, {"follower_delta": 12}) == 12
    assert compute_delta("audience_growth", "search", steps, {"follower_delta": -3}) == 1
    assert compute_delta("audience_growth", "agent", steps) == 0


def test_content_engagement_falls_back_to_engagements():
    engaged = [_step(StepType.POST_ENGAGEMENT), _step(StepType.POST_ENGAGEMENT)]
    assert compute_delta("content_engagement", "agent", engaged) == 2
    published = engaged + [_step(StepType.CONTENT_PUBLISH)]
    assert compute_delta("content_engagement", "agent", published) == 1


def test_pipeline_progression_counts_merges():
    steps = [_step(StepType.CONTACT_MERGE), _step(StepType.CONTACT_MERGE, StepStatus.FAILED)]
    assert compute_delta("pipeline_progression", "enrich", steps) == 1


async def _completed_search_run(ledger, creates: int) -> str:
    run = await ledger.create_run(WorkflowType.SEARCH, status=RunStatus.RUNNING)
    for _ in range(creates):
        await ledger.record_step(run.id, StepType.CONTACT_CREATE, StepStatus.COMPLETED)
    return run.id


@pytest.mark.asyncio
async def test_goal_accumulates_and_is_achieved_at_target(repo, ledger):
    tracker = GoalTracker(repo)
    goal = await tracker.create_goal("Q3 leads", GoalType.LEAD_GENERATION, target_value=5)
    await tracker.link_template(goal.id, "tpl-1")

    first = await _completed_search_run(ledger, 3)
    await tracker.on_run_completed("tpl-1", first, WorkflowType.SEARCH)
    stored = await repo.get_goal(goal.id)
    assert stored.current_value == 3
    assert stored.status == GoalStatus.ACTIVE.value

    second = await _completed_search_run(ledger, 2)
    updated = await tracker.on_run_completed("tpl-1", second, WorkflowType.SEARCH)
    assert [g.id for g in updated] == [goal.id]
    stored = await repo.get_goal(goal.id)
    assert stored.current_value == 5
    assert stored.status == GoalStatus.ACHIEVED.value

    history = await repo.list_goal_progress(goal.id)
    assert [(p.value, p.delta, p.source) for p in history] == [(3, 3, first), (5, 2, second)]
    assert history[0].note == "Auto-tracked from search workflow"


@pytest.mark.asyncio
async def test_zero_delta_writes_nothing(repo, ledger):
    tracker = GoalTracker(repo)
    goal = await tracker.create_goal("Leads", GoalType.LEAD_GENERATION, target_value=5)
    await tracker.link_template(goal.id, "tpl-1")

    run_id = await _completed_search_run(ledger, 0)
    assert await tracker.on_run_completed("tpl-1", run_id, WorkflowType.SEARCH) == []
    assert await repo.list_goal_progress(goal.id) == []


@pytest.mark.asyncio
async def test_inactive_goals_are_ignored(repo, ledger):
    tracker = GoalTracker(repo)
    goal = await tracker.create_goal(
        "Paused", GoalType.LEAD_GENERATION, target_value=5, status=GoalStatus.PAUSED
    )
    await tracker.link_template(goal.id, "tpl-1")

    run_id = await _completed_search_run(ledger, 2)
    await tracker.on_run_completed("tpl-1", run_id, WorkflowType.SEARCH)
    assert (await repo.get_goal(goal.id)).current_value == 0


@pytest.mark.asyncio
async def test_goal_update_failures_are_swallowed(repo, ledger, monkeypatch):
    tracker = GoalTracker(repo)
    goal = await tracker.create_goal("Leads", GoalType.LEAD_GENERATION, target_value=5)
    await tracker.link_template(goal.id, "tpl-1")

    async def broken(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(repo, "list_goals_for_template", broken)
    run_id = await _completed_search_run(ledger, 2)
    assert await tracker.on_run_completed("tpl-1", run_id, WorkflowType.SEARCH) == []


@pytest.mark.asyncio
async def test_manual_progress(repo):
    tracker = GoalTracker(repo)
    goal = await tracker.create_goal("Followers", GoalType.AUDIENCE_GROWTH, target_value=100)

    updated = await tracker.record_manual_progress(goal.id, 40, note="Counted by hand")
    assert updated.current_value == 40

    history = await repo.list_goal_progress(goal.id)
    assert history[-1].delta == 40
    assert history[-1].source == "manual"

    with pytest.raises(KeyError):
        await tracker.record_manual_progress("missing", 1)
