"""Goal progress derived from completed workflow runs."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .contracts import GoalStatus, GoalType, StepStatus, StepType, WorkflowType
from .persistence import (
    Goal,
    GoalProgress,
    GoalWorkflowLink,
    VoloRepository,
    WorkflowStep,
    get_repository,
)
from .persistence.models import utcnow

logger = logging.getLogger(__name__)


def _completed(steps: list[WorkflowStep], step_type: StepType) -> int:
    return sum(
        1
        for s in steps
        if s.step_type == step_type.value and s.status == StepStatus.COMPLETED.value
    )


def compute_delta(
    goal_type: GoalType | str,
    workflow_type: WorkflowType | str,
    steps: list[WorkflowStep],
    result: Optional[dict[str, Any]] = None,
) -> int:
    """Contribution of one run toward a goal of ``goal_type``. Never negative."""
    goal_type = GoalType(goal_type)
    workflow_type = WorkflowType(workflow_type)
    result = result or {}

    if goal_type == GoalType.LEAD_GENERATION:
        if workflow_type == WorkflowType.SEARCH:
            return _completed(steps, StepType.CONTACT_CREATE)
        if workflow_type == WorkflowType.ENRICH:
            return _completed(steps, StepType.CONTACT_MERGE)
        return 0
    if goal_type == GoalType.AUDIENCE_GROWTH:
        follower_delta = result.get("follower_delta")
        if isinstance(follower_delta, int) and follower_delta > 0:
            return follower_delta
        if workflow_type == WorkflowType.SEARCH:
            return _completed(steps, StepType.CONTACT_CREATE)
        return 0
    if goal_type == GoalType.CONTENT_ENGAGEMENT:
        published = _completed(steps, StepType.CONTENT_PUBLISH)
        return published or _completed(steps, StepType.POST_ENGAGEMENT)
    if goal_type == GoalType.PIPELINE_PROGRESSION:
        return _completed(steps, StepType.CONTACT_MERGE)
    return 0


class GoalTracker:
    def __init__(self, repository: VoloRepository | None = None) -> None:
        self.repository = repository or get_repository()

    async def create_goal(self, name: str, goal_type: GoalType | str, target_value: int, **fields: Any) -> Goal:
        goal = Goal(name=name, goal_type=goal_type, target_value=target_value, **fields)
        await self.repository.save_goal(goal)
        return goal

    async def link_template(
        self, goal_id: str, template_id: str, contribution: str = "primary"
    ) -> GoalWorkflowLink:
        link = GoalWorkflowLink(goal_id=goal_id, template_id=template_id, contribution=contribution)
        await self.repository.save_goal_link(link)
        return link

    async def _apply(self, goal: Goal, delta: int, source: Optional[str], note: Optional[str]) -> Goal:
        value = goal.current_value + delta
        changes: dict[str, Any] = {"current_value": value, "updated_at": utcnow()}
        if goal.status == GoalStatus.ACTIVE.value and value >= goal.target_value:
            changes["status"] = GoalStatus.ACHIEVED.value
            logger.info(f"Goal {goal.name!r} achieved ({value}/{goal.target_value})")
        updated = goal.model_copy(update=changes)
        await self.repository.save_goal(updated)
        await self.repository.add_goal_progress(
            GoalProgress(goal_id=goal.id, value=value, delta=delta, source=source, note=note)
        )
        return updated

    async def on_run_completed(
        self,
        template_id: Optional[str],
        run_id: str,
        workflow_type: WorkflowType | str,
        result: Optional[dict[str, Any]] = None,
    ) -> list[Goal]:
        """Advance active goals linked to ``template_id``.

        Failures are logged; this never raises into the caller.
        """
        if not template_id:
            return []
        updated: list[Goal] = []
        try:
            goals = await self.repository.list_goals_for_template(template_id)
            active = [g for g in goals if g.status == GoalStatus.ACTIVE.value]
            if not active:
                return []
            steps = await self.repository.list_steps(run_id)
            workflow_type = WorkflowType(workflow_type)
            for goal in active:
                delta = compute_delta(goal.goal_type, workflow_type, steps, result)
                if delta <= 0:
                    continue
                updated.append(
                    await self._apply(
                        goal,
                        delta,
                        source=run_id,
                        note=f"Auto-tracked from {workflow_type.value} workflow",
                    )
                )
        except Exception:
            logger.exception(f"Goal progress update failed for run {run_id}")
        return updated

    async def record_manual_progress(
        self, goal_id: str, value: int, note: Optional[str] = None
    ) -> Goal:
        """Set a goal's value by hand and append a snapshot with the difference."""
        goal = await self.repository.get_goal(goal_id)
        if goal is None:
            raise KeyError(f"Goal {goal_id} not found")
        return await self._apply(goal, value - goal.current_value, source="manual", note=note)
