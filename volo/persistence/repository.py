"""Repository abstraction for volo state persistence."""

from __future__ import annotations

from typing import Optional, Protocol

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


class VoloRepository(Protocol):
    """Protocol for state persistence backends.

    ``save_*`` methods insert or replace by primary key.
    """

    # Runs and steps -----------------------------------------------------
    async def save_run(self, run: WorkflowRun) -> None:
        """Insert or replace a run."""

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        """Retrieve a run by id."""

    async def list_runs(
        self,
        status: Optional[str] = None,
        workflow_type: Optional[str] = None,
        template_id: Optional[str] = None,
    ) -> list[WorkflowRun]:
        """Return runs, newest first."""

    async def save_step(self, step: WorkflowStep) -> None:
        """Insert or replace a step."""

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        """Retrieve a step by id."""

    async def list_steps(self, run_id: str) -> list[WorkflowStep]:
        """Return the steps of a run ordered by index."""

    async def max_step_index(self, run_id: str) -> int | None:
        """Highest step index written for a run."""

    # Sync cursors -------------------------------------------------------
    async def get_cursor(
        self, platform_account_id: str, data_type: str
    ) -> SyncCursor | None:
        """Retrieve the cursor for an (account, data type) pair."""

    async def insert_cursor(self, cursor: SyncCursor) -> SyncCursor:
        """Insert a cursor, returning the stored one if the pair already exists."""

    async def save_cursor(self, cursor: SyncCursor) -> None:
        """Replace an existing cursor."""

    async def list_cursors(self, platform_account_id: str) -> list[SyncCursor]:
        """Return all cursors for an account."""

    # Goals --------------------------------------------------------------
    async def save_goal(self, goal: Goal) -> None: ...

    async def get_goal(self, goal_id: str) -> Goal | None: ...

    async def list_goals_for_template(self, template_id: str) -> list[Goal]:
        """Return goals linked to a template."""

    async def save_goal_link(self, link: GoalWorkflowLink) -> None: ...

    async def add_goal_progress(self, progress: GoalProgress) -> None: ...

    async def list_goal_progress(self, goal_id: str) -> list[GoalProgress]:
        """Return snapshots in the order they were taken."""

    # Templates, contacts and content ------------------------------------
    async def save_template(self, template: WorkflowTemplate) -> None: ...

    async def get_template(self, template_id: str) -> WorkflowTemplate | None: ...

    async def save_contact(self, contact: Contact) -> None: ...

    async def get_contact(self, contact_id: str) -> Contact | None: ...

    async def find_contact(
        self, email: Optional[str] = None, name: Optional[str] = None
    ) -> tuple[Contact, str] | None:
        """Find a contact by exact email, else case-insensitive exact name.

        Returns the contact together with the field it matched on.
        """

    async def list_contacts(self, include_archived: bool = False) -> list[Contact]: ...

    async def save_content(self, item: ContentItem) -> None: ...

    async def get_content(self, content_id: str) -> ContentItem | None: ...
