"""Autonomous agent loop: drives the model, records every turn in the ledger."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

import httpx
from pydantic_ai import Agent
from pydantic_ai.messages import ModelResponse, TextPart, ToolCallPart
from pydantic_ai.models import Model

from ..browser import BrowserSessionManager
from ..config import VoloConfig, load_config
from ..constants import (
    COST_RATES,
    DEFAULT_MODEL,
    ERROR_TEXT_LIMIT,
    FETCH_TIMEOUT_SECONDS,
    FINAL_TEXT_LIMIT,
    THINKING_TEXT_LIMIT,
)
from ..contracts import (
    ENTITY_STEP_TYPES,
    AgentRunConfig,
    PruneTaskConfig,
    RunStatus,
    StepStatus,
    StepType,
    WorkflowType,
)
from ..goals import GoalTracker
from ..ledger import Ledger
from ..persistence import (
    VoloRepository,
    WorkflowRun,
    WorkflowStep,
    WorkflowTemplate,
    get_repository,
)
from ..persistence.models import utcnow
from .deps import AgentDeps
from .prompts import build_system_prompt, build_user_prompt
from .router import DomainThrottle
from .search import SearchClient
from .tools import TOOLS

logger = logging.getLogger(__name__)

ModelFactory = Callable[[str], Union[Model, str]]


def default_model_factory(model_id: str) -> str:
    return f"anthropic:{model_id}"


def compute_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """USD cost of a run; unknown models are priced as the default model."""
    rates = COST_RATES.get(model) or COST_RATES[DEFAULT_MODEL]
    return (input_tokens * rates["input"] + output_tokens * rates["output"]) / 1_000_000


def tally_counters(steps: list[WorkflowStep]) -> dict[str, int]:
    """Run counters from entity-changing steps."""
    entity = [s for s in steps if s.step_type in {t.value for t in ENTITY_STEP_TYPES}]
    success = sum(1 for s in entity if s.status == StepStatus.COMPLETED.value)
    skipped = sum(1 for s in entity if s.status == StepStatus.SKIPPED.value)
    errors = sum(1 for s in entity if s.status == StepStatus.FAILED.value)
    processed = success + skipped + errors
    return {
        "total_items": processed,
        "processed_items": processed,
        "success_items": success,
        "skipped_items": skipped,
        "error_items": errors,
    }


def prune_summary(steps: list[WorkflowStep], evaluated: int) -> dict[str, Any]:
    archived = [
        s
        for s in steps
        if s.step_type == StepType.CONTACT_ARCHIVE.value
        and s.status == StepStatus.COMPLETED.value
    ]
    return {
        "evaluated": evaluated,
        "archived": len(archived),
        "kept": max(evaluated - len(archived), 0),
        "archived_contacts": [
            {
                "id": s.contact_id,
                "name": (s.output or {}).get("name"),
                "reason": (s.output or {}).get("reason"),
            }
            for s in archived
        ],
    }


@dataclass
class LoopOutcome:
    final_text: str = ""
    model_turns: int = 0
    budget_exhausted: bool = False
    input_tokens: int = 0
    output_tokens: int = 0
    texts: list[str] = field(default_factory=list)


class AgentRunner:
    """Runs one workflow through the agent loop and finalizes it in the ledger.

    The terminal status of a run is written exactly once: ``completed`` on a
    normal finish (including budget exhaustion), ``failed`` on an unhandled
    exception, ``cancelled`` when the task is cancelled.
    """

    def __init__(
        self,
        ledger: Optional[Ledger] = None,
        config: Optional[VoloConfig] = None,
        *,
        model_factory: Optional[ModelFactory] = None,
        search: Optional[SearchClient] = None,
        browser: Optional[BrowserSessionManager] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        goals: Optional[GoalTracker] = None,
    ) -> None:
        self.ledger = ledger or Ledger()
        self.config = config or load_config()
        self.repository: VoloRepository = self.ledger.repository
        self.model_factory = model_factory or default_model_factory
        self.search = search
        self.browser = browser
        self.http_client = http_client
        self.goals = goals or GoalTracker(self.repository)
        self.throttle = DomainThrottle()
        self._contact_lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls, config: Optional[VoloConfig] = None, *, model_factory: Optional[ModelFactory] = None
    ) -> "AgentRunner":
        """Wire the repository, search, HTTP and browser clients from configuration."""
        config = config or load_config()
        search = None
        if config.search.brave_api_key or config.search.tavily_api_key:
            search = SearchClient(config.search)
        return cls(
            Ledger(get_repository(config.database_url)),
            config,
            model_factory=model_factory,
            search=search,
            browser=BrowserSessionManager.from_config(config.browser),
            http_client=httpx.AsyncClient(timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True),
        )

    async def aclose(self) -> None:
        if self.search is not None:
            await self.search.aclose()
        if self.http_client is not None:
            await self.http_client.aclose()

    async def open_run(self, config: AgentRunConfig, run_id: Optional[str] = None) -> WorkflowRun:
        """Create the run as ``running`` or move an existing pending run to it."""
        if run_id is None:
            return await self.ledger.create_run(
                config.workflow_type,
                status=RunStatus.RUNNING,
                template_id=config.template_id,
                config=config.model_dump(mode="json"),
                trigger=config.trigger,
                model=config.model,
            )
        run = await self.ledger.update_run(run_id, status=RunStatus.RUNNING, model=config.model)
        if run is None:
            raise KeyError(f"Run {run_id} not found")
        return run

    async def run(self, config: AgentRunConfig, run_id: Optional[str] = None) -> WorkflowRun:
        run = await self.open_run(config, run_id)
        run_id = run.id
        finalized = False
        logger.info(f"Starting {config.workflow_type.value} run {run_id} with {config.model}")

        try:
            template = None
            if config.template_id:
                template = await self.repository.get_template(config.template_id)

            evaluated = 0
            if isinstance(config.task, PruneTaskConfig):
                evaluated = len((await self.repository.list_contacts())[: config.task.max_contacts])

            system_prompt = build_system_prompt(config.workflow_type, config.system_prompt, template)
            user_prompt = await build_user_prompt(config, self.repository, template)
            agent = Agent(
                self.model_factory(config.model),
                deps_type=AgentDeps,
                system_prompt=system_prompt,
                tools=TOOLS,
            )
            deps = AgentDeps(
                run_id=run_id,
                workflow_type=config.workflow_type,
                ledger=self.ledger,
                repository=self.repository,
                search=self.search,
                browser=self.browser,
                http_client=self.http_client,
                throttle=self.throttle,
                contact_lock=self._contact_lock,
            )
            outcome = await self._drive(agent, user_prompt, deps, config.max_steps)

            steps = await self.ledger.list_steps(run_id)
            result: dict[str, Any] = {
                "final_text": outcome.final_text[:FINAL_TEXT_LIMIT],
                "steps_count": len(steps),
                "budget_exhausted": outcome.budget_exhausted,
            }
            if config.workflow_type == WorkflowType.PRUNE:
                result["prune_result"] = prune_summary(steps, evaluated)

            finished = await self.ledger.update_run(
                run_id,
                status=RunStatus.COMPLETED,
                result=result,
                input_tokens=outcome.input_tokens,
                output_tokens=outcome.output_tokens,
                cost_usd=compute_cost(config.model, outcome.input_tokens, outcome.output_tokens),
                **tally_counters(steps),
            )
            finalized = True
            if outcome.budget_exhausted:
                logger.warning(f"Run {run_id} stopped after {config.max_steps} model turns")
            logger.info(f"Run {run_id} completed ({len(steps)} steps)")

            await self._after_completion(template, run_id, config.workflow_type, result)
            return finished or run
        except asyncio.CancelledError:
            if not finalized:
                await self._finalize(run_id, status=RunStatus.CANCELLED)
                logger.info(f"Run {run_id} cancelled")
            raise
        except Exception as exc:
            if finalized:
                raise
            message = (str(exc) or type(exc).__name__)[:ERROR_TEXT_LIMIT]
            logger.exception(f"Run {run_id} failed: {message}")
            await self.ledger.record_step(
                run_id,
                StepType.ERROR,
                StepStatus.FAILED,
                tool="agent_runner",
                error=message,
            )
            failed = await self._finalize(
                run_id, status=RunStatus.FAILED, errors=[message], error_items=1
            )
            return failed or run

    async def _finalize(self, run_id: str, **changes: Any) -> WorkflowRun | None:
        try:
            return await self.ledger.update_run(run_id, **changes)
        except Exception:
            logger.exception(f"Failed to finalize run {run_id}")
            return None

    async def _drive(
        self, agent: Agent[AgentDeps, str], user_prompt: str, deps: AgentDeps, max_steps: int
    ) -> LoopOutcome:
        outcome = LoopOutcome()
        async with agent.iter(user_prompt, deps=deps) as agent_run:
            async for node in agent_run:
                if Agent.is_model_request_node(node):
                    if outcome.model_turns >= max_steps:
                        outcome.budget_exhausted = True
                        break
                    outcome.model_turns += 1
                elif Agent.is_call_tools_node(node):
                    await self._record_response(deps, node.model_response, outcome)

            usage = agent_run.usage()
            outcome.input_tokens = usage.input_tokens or 0
            outcome.output_tokens = usage.output_tokens or 0
            if agent_run.result is not None:
                outcome.final_text = str(agent_run.result.output)
            elif outcome.texts:
                outcome.final_text = outcome.texts[-1]
        return outcome

    async def _record_response(
        self, deps: AgentDeps, response: ModelResponse, outcome: LoopOutcome
    ) -> None:
        text = "".join(p.content for p in response.parts if isinstance(p, TextPart)).strip()
        if text:
            outcome.texts.append(text)
            await self.ledger.record_step(
                deps.run_id,
                StepType.THINKING,
                StepStatus.COMPLETED,
                output={"text": text[:THINKING_TEXT_LIMIT]},
            )
        for part in response.parts:
            if isinstance(part, ToolCallPart):
                await self.ledger.record_step(
                    deps.run_id,
                    StepType.TOOL_CALL,
                    StepStatus.COMPLETED,
                    tool=part.tool_name,
                    input=part.args_as_dict(),
                )

    async def _after_completion(
        self,
        template: Optional[WorkflowTemplate],
        run_id: str,
        workflow_type: WorkflowType,
        result: dict[str, Any],
    ) -> None:
        if template is None:
            return
        try:
            await self.repository.save_template(
                template.model_copy(
                    update={"total_runs": template.total_runs + 1, "last_run_at": utcnow()}
                )
            )
        except Exception:
            logger.exception(f"Failed to update stats for template {template.id}")
        await self.goals.on_run_completed(template.id, run_id, workflow_type, result)
