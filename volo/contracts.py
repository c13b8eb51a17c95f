"""Enumerations, state machines and run configuration contracts."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from .constants import DEFAULT_MODEL, MAX_STEPS_DEFAULT, SYNC_MAX_PAGES_DEFAULT
from .errors import InvalidTransitionError, TaskConfigError


class WorkflowType(str, Enum):
    SYNC = "sync"
    ENRICH = "enrich"
    SEARCH = "search"
    PRUNE = "prune"
    SEQUENCE = "sequence"
    AGENT = "agent"


class Trigger(str, Enum):
    USER = "user"
    SCHEDULED = "scheduled"
    TEMPLATE = "template"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_RUN_STATUSES


TERMINAL_RUN_STATUSES = frozenset(
    {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED}
)

RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset(
        {RunStatus.RUNNING, RunStatus.FAILED, RunStatus.CANCELLED}
    ),
    RunStatus.RUNNING: frozenset(
        {RunStatus.PAUSED, RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED}
    ),
    RunStatus.PAUSED: frozenset(
        {RunStatus.RUNNING, RunStatus.FAILED, RunStatus.CANCELLED}
    ),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
    RunStatus.CANCELLED: frozenset(),
}


def check_run_transition(current: str, target: str) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> target`` is allowed.

    Re-asserting the current non-terminal status is accepted so that counter
    updates can carry the status along unchanged.
    """
    current_status, target_status = RunStatus(current), RunStatus(target)
    if current_status == target_status and not current_status.is_terminal:
        return
    if target_status not in RUN_TRANSITIONS[current_status]:
        raise InvalidTransitionError("run", current_status.value, target_status.value)


class StepType(str, Enum):
    URL_FETCH = "url_fetch"
    BROWSER_SCRAPE = "browser_scrape"
    WEB_SEARCH = "web_search"
    LLM_EXTRACT = "llm_extract"
    CONTACT_MERGE = "contact_merge"
    CONTACT_CREATE = "contact_create"
    CONTACT_ARCHIVE = "contact_archive"
    ROUTING_DECISION = "routing_decision"
    SYNC_PAGE = "sync_page"
    ERROR = "error"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    DECISION = "decision"
    ENGAGEMENT_ACTION = "engagement_action"
    CONTENT_CREATE = "content_create"
    CONTENT_PUBLISH = "content_publish"
    POST_ENGAGEMENT = "post_engagement"


# Step types that represent an item of work the run produced or touched.
ENTITY_STEP_TYPES = frozenset(
    {
        StepType.CONTACT_CREATE,
        StepType.CONTACT_MERGE,
        StepType.CONTACT_ARCHIVE,
        StepType.CONTENT_CREATE,
        StepType.CONTENT_PUBLISH,
        StepType.POST_ENGAGEMENT,
    }
)


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self not in (StepStatus.PENDING, StepStatus.RUNNING)


def check_step_transition(current: str, target: str) -> None:
    if StepStatus(current).is_terminal or not StepStatus(target).is_terminal:
        raise InvalidTransitionError("step", current, target)


class SyncDataType(str, Enum):
    TWEETS = "tweets"
    MENTIONS = "mentions"
    FOLLOWERS = "followers"
    FOLLOWING = "following"
    DMS = "dms"
    LIKES = "likes"
    CONNECTIONS = "connections"
    GOOGLE_CONTACTS = "google_contacts"
    GMAIL_METADATA = "gmail_metadata"
    X_PROFILES = "x_profiles"


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


class GoalType(str, Enum):
    AUDIENCE_GROWTH = "audience_growth"
    LEAD_GENERATION = "lead_generation"
    CONTENT_ENGAGEMENT = "content_engagement"
    PIPELINE_PROGRESSION = "pipeline_progression"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    ACHIEVED = "achieved"
    MISSED = "missed"
    PAUSED = "paused"


class Platform(str, Enum):
    X = "x"
    LINKEDIN = "linkedin"


# ---------------------------------------------------------------------------
# Per-workflow task configuration


class SearchTaskConfig(BaseModel):
    kind: Literal["search"] = "search"
    max_results: int = Field(default=20, ge=1)
    target_domains: list[str] = Field(default_factory=list)


class EnrichTaskConfig(BaseModel):
    kind: Literal["enrich"] = "enrich"
    max_contacts: int = Field(default=10, ge=1)
    max_enrichment_score: int = Field(default=50, ge=0, le=100)


class PruneTaskConfig(BaseModel):
    kind: Literal["prune"] = "prune"
    max_contacts: int = Field(default=10, ge=1)
    criteria: Optional[str] = None
    company_name: Optional[str] = None


class AgentTaskConfig(BaseModel):
    """Engagement/publishing configuration for ``agent`` and ``sequence`` runs."""

    kind: Literal["agent"] = "agent"
    topics: list[str] = Field(default_factory=list)
    tone: Optional[str] = None
    frequency: Optional[str] = None
    max_replies: Optional[int] = None
    max_engagements: Optional[int] = None
    platforms: list[Platform] = Field(default_factory=list)


class SyncTaskConfig(BaseModel):
    kind: Literal["sync"] = "sync"
    platform_account_id: str
    data_type: SyncDataType
    max_pages: int = Field(default=SYNC_MAX_PAGES_DEFAULT, ge=1)


TaskConfig = Annotated[
    Union[
        SearchTaskConfig,
        EnrichTaskConfig,
        PruneTaskConfig,
        AgentTaskConfig,
    ],
    Field(discriminator="kind"),
]

TASK_CONFIG_TYPES: dict[WorkflowType, type[BaseModel]] = {
    WorkflowType.SEARCH: SearchTaskConfig,
    WorkflowType.ENRICH: EnrichTaskConfig,
    WorkflowType.PRUNE: PruneTaskConfig,
    WorkflowType.AGENT: AgentTaskConfig,
    WorkflowType.SEQUENCE: AgentTaskConfig,
    WorkflowType.SYNC: SyncTaskConfig,
}


def parse_task_config(
    workflow_type: WorkflowType | str, data: Optional[dict[str, Any]] = None
) -> TaskConfig | SyncTaskConfig:
    """Build the typed task configuration for ``workflow_type`` from raw data."""
    config_cls = TASK_CONFIG_TYPES[WorkflowType(workflow_type)]
    payload = dict(data or {})
    payload.pop("kind", None)
    try:
        return config_cls(**payload)
    except ValidationError as exc:
        raise TaskConfigError(
            f"Invalid {WorkflowType(workflow_type).value} configuration: {exc}"
        ) from exc


class AgentRunConfig(BaseModel):
    """Everything needed to start one agent run."""

    workflow_type: WorkflowType
    template_id: Optional[str] = None
    system_prompt: Optional[str] = None
    max_steps: int = Field(default=MAX_STEPS_DEFAULT, ge=1)
    model: str = DEFAULT_MODEL
    trigger: Trigger = Trigger.USER
    task: Optional[TaskConfig] = None

    @model_validator(mode="after")
    def _check_task(self) -> "AgentRunConfig":
        if self.workflow_type == WorkflowType.SYNC:
            raise TaskConfigError(
                "Sync runs are driven by run_sync_workflow, not the agent loop"
            )
        expected = TASK_CONFIG_TYPES[self.workflow_type]
        if self.task is None:
            self.task = expected()
        elif not isinstance(self.task, expected):
            raise TaskConfigError(
                f"{type(self.task).__name__} does not apply to "
                f"{self.workflow_type.value} runs"
            )
        if self.template_id and "trigger" not in self.model_fields_set:
            self.trigger = Trigger.TEMPLATE
        return self
