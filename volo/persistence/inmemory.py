"""In-memory implementation of the volo repository."""

from __future__ import annotations

from typing import Dict, Optional

from .models import (
    Contact,
    ContentItem,
    Goal,
    GoalProgress,
    GoalWorkflowLink,
    SyncCursor,
    WorkflowRun,
    WorkflowStep,
    WorkflowTemplate,
)
from .repository import VoloRepository


class InMemoryRepository(VoloRepository):
    """Store volo state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, WorkflowRun] = {}
        self._steps: Dict[str, WorkflowStep] = {}
        self._cursors: Dict[tuple[str, str], SyncCursor] = {}
        self._goals: Dict[str, Goal] = {}
        self._links: Dict[str, GoalWorkflowLink] = {}
        self._progress: list[GoalProgress] = []
        self._templates: Dict[str, WorkflowTemplate] = {}
        self._contacts: Dict[str, Contact] = {}
        self._content: Dict[str, ContentItem] = {}

    # ------------------------------------------------------------------
    async def save_run(self, run: WorkflowRun) -> None:
        self._runs[run.id] = run.model_copy(deep=True)

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def list_runs(
        self,
        status: Optional[str] = None,
        workflow_type: Optional[str] = None,
        template_id: Optional[str] = None,
    ) -> list[WorkflowRun]:
        runs = [
            run.model_copy(deep=True)
            for run in self._runs.values()
            if (status is None or run.status == status)
            and (workflow_type is None or run.workflow_type == workflow_type)
            and (template_id is None or run.template_id == template_id)
        ]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)

    async def save_step(self, step: WorkflowStep) -> None:
        self._steps[step.id] = step.model_copy(deep=True)

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        step = self._steps.get(step_id)
        return step.model_copy(deep=True) if step else None

    async def list_steps(self, run_id: str) -> list[WorkflowStep]:
        steps = [
            s.model_copy(deep=True)
            for s in self._steps.values()
            if s.workflow_run_id == run_id
        ]
        return sorted(steps, key=lambda s: s.step_index)

    async def max_step_index(self, run_id: str) -> int | None:
        indexes = [s.step_index for s in self._steps.values() if s.workflow_run_id == run_id]
        return max(indexes) if indexes else None

    # ------------------------------------------------------------------
    async def get_cursor(
        self, platform_account_id: str, data_type: str
    ) -> SyncCursor | None:
        cursor = self._cursors.get((platform_account_id, data_type))
        return cursor.model_copy(deep=True) if cursor else None

    async def insert_cursor(self, cursor: SyncCursor) -> SyncCursor:
        key = (cursor.platform_account_id, cursor.data_type)
        stored = self._cursors.setdefault(key, cursor.model_copy(deep=True))
        return stored.model_copy(deep=True)

    async def save_cursor(self, cursor: SyncCursor) -> None:
        self._cursors[(cursor.platform_account_id, cursor.data_type)] = cursor.model_copy(
            deep=True
        )

    async def list_cursors(self, platform_account_id: str) -> list[SyncCursor]:
        return [
            c.model_copy(deep=True)
            for (account, _), c in self._cursors.items()
            if account == platform_account_id
        ]

    # ------------------------------------------------------------------
    async def save_goal(self, goal: Goal) -> None:
        self._goals[goal.id] = goal.model_copy(deep=True)

    async def get_goal(self, goal_id: str) -> Goal | None:
        goal = self._goals.get(goal_id)
        return goal.model_copy(deep=True) if goal else None

    async def list_goals_for_template(self, template_id: str) -> list[Goal]:
        goal_ids = {l.goal_id for l in self._links.values() if l.template_id == template_id}
        return [
            self._goals[goal_id].model_copy(deep=True)
            for goal_id in goal_ids
            if goal_id in self._goals
        ]

    async def save_goal_link(self, link: GoalWorkflowLink) -> None:
        self._links[link.id] = link.model_copy(deep=True)

    async def add_goal_progress(self, progress: GoalProgress) -> None:
        self._progress.append(progress.model_copy(deep=True))

    async def list_goal_progress(self, goal_id: str) -> list[GoalProgress]:
        return [p.model_copy(deep=True) for p in self._progress if p.goal_id == goal_id]

    # ------------------------------------------------------------------
    async def save_template(self, template: WorkflowTemplate) -> None:
        self._templates[template.id] = template.model_copy(deep=True)

    async def get_template(self, template_id: str) -> WorkflowTemplate | None:
        template = self._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def save_contact(self, contact: Contact) -> None:
        self._contacts[contact.id] = contact.model_copy(deep=True)

    async def get_contact(self, contact_id: str) -> Contact | None:
        contact = self._contacts.get(contact_id)
        return contact.model_copy(deep=True) if contact else None

    async def find_contact(
        self, email: Optional[str] = None, name: Optional[str] = None
    ) -> tuple[Contact, str] | None:
        if email:
            for contact in self._contacts.values():
                if contact.email == email:
                    return contact.model_copy(deep=True), "email"
        if name:
            wanted = name.strip().lower()
            for contact in self._contacts.values():
                if contact.name.strip().lower() == wanted:
                    return contact.model_copy(deep=True), "name"
        return None

    async def list_contacts(self, include_archived: bool = False) -> list[Contact]:
        return [
            c.model_copy(deep=True)
            for c in sorted(self._contacts.values(), key=lambda c: c.created_at)
            if include_archived or c.archived_at is None
        ]

    async def save_content(self, item: ContentItem) -> None:
        self._content[item.id] = item.model_copy(deep=True)

    async def get_content(self, content_id: str) -> ContentItem | None:
        item = self._content.get(content_id)
        return item.model_copy(deep=True) if item else None
