"""Data models for persisted run, cursor, goal and CRM state."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..contracts import (
    GoalStatus,
    GoalType,
    RunStatus,
    StepStatus,
    SyncStatus,
    Trigger,
    WorkflowType,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every backend round-trips unchanged."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Record(BaseModel):
    model_config = ConfigDict(use_enum_values=True)


class WorkflowRun(Record):
    """One execution of a workflow."""

    id: str = Field(default_factory=new_id)
    workflow_type: WorkflowType
    template_id: Optional[str] = None
    platform_account_id: Optional[str] = None
    status: RunStatus = RunStatus.PENDING
    total_items: int = 0
    processed_items: int = 0
    success_items: int = 0
    skipped_items: int = 0
    error_items: int = 0
    config: dict[str, Any] = Field(default_factory=dict)
    result: Optional[dict[str, Any]] = None
    errors: list[str] = Field(default_factory=list)
    trigger: Trigger = Trigger.USER
    model: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WorkflowStep(Record):
    """One ordered action inside a run."""

    id: str = Field(default_factory=new_id)
    workflow_run_id: str
    step_index: int
    step_type: str
    status: StepStatus = StepStatus.COMPLETED
    tool: Optional[str] = None
    url: Optional[str] = None
    contact_id: Optional[str] = None
    input: Optional[dict[str, Any]] = None
    output: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    duration_ms: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class SyncCursor(Record):
    """Resume position for one (account, data type) stream."""

    id: str = Field(default_factory=new_id)
    platform_account_id: str
    data_type: str
    cursor: Optional[str] = None
    oldest_fetched_at: Optional[datetime] = None
    newest_fetched_at: Optional[datetime] = None
    total_items_synced: int = 0
    sync_status: SyncStatus = SyncStatus.IDLE
    sync_progress: Optional[dict[str, Any]] = None
    last_error: Optional[str] = None
    last_sync_started_at: Optional[datetime] = None
    last_sync_completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)


class Goal(Record):
    id: str = Field(default_factory=new_id)
    name: str
    goal_type: GoalType
    platform: Optional[str] = None
    target_value: int
    current_value: int = 0
    unit: str = "count"
    deadline: Optional[datetime] = None
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class GoalWorkflowLink(Record):
    id: str = Field(default_factory=new_id)
    goal_id: str
    template_id: str
    contribution: str = "primary"


class GoalProgress(Record):
    """Append-only snapshot of a goal's value."""

    id: str = Field(default_factory=new_id)
    goal_id: str
    value: int
    delta: int
    source: Optional[str] = None
    note: Optional[str] = None
    snapshot_at: datetime = Field(default_factory=utcnow)


class WorkflowTemplate(Record):
    id: str = Field(default_factory=new_id)
    name: str
    template_type: str = "custom"
    workflow_type: WorkflowType
    description: Optional[str] = None
    system_prompt: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)
    total_runs: int = 0
    last_run_at: Optional[datetime] = None


class Contact(Record):
    id: str = Field(default_factory=new_id)
    name: str
    email: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    headline: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    bio: Optional[str] = None
    platform: Optional[str] = None
    funnel_stage: str = "prospect"
    tags: list[str] = Field(default_factory=list)
    enrichment_score: int = 0
    archived_at: Optional[datetime] = None
    archive_reason: Optional[str] = None
    archived_by_run_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ContentItem(Record):
    id: str = Field(default_factory=new_id)
    title: Optional[str] = None
    body: str
    content_type: str = "post"
    platform_target: Optional[str] = None
    status: str = "draft"
    ai_generated: bool = True
    generation_prompt: Optional[str] = None
    platform_url: Optional[str] = None
    platform_post_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
