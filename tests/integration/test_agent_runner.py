import httpx
import pytest

from scripted_model import call, scripted, text
from volo.agents import SearchClient, compute_cost
from volo.agents.tools.acquisition import ESCALATION_REASON
from volo.config import SearchConfig
from volo.constants import COST_RATES, DEFAULT_MODEL
from volo.contracts import AgentRunConfig, GoalStatus, GoalType, WorkflowType, parse_task_config
from volo.goals import GoalTracker
from volo.persistence import Contact, WorkflowTemplate

PEOPLE = ["Ada Lovelace", "Grace Hopper", "Alan Turing", "Edsger Dijkstra", "Barbara Liskov"]


def _search_config(**task):
    return AgentRunConfig(
        workflow_type=WorkflowType.SEARCH,
        max_steps=10,
        task=parse_task_config("search", task or {"max_results": 5}),
    )


@pytest.mark.asyncio
async def test_search_run_creates_contacts(make_runner, ledger, repo):
    model = scripted(
        [text("Creating the five people I verified."), *[call("create_contact", name=n) for n in PEOPLE]],
        final="Created five contacts.",
    )
    runner = make_runner(model)

    run = await runner.run(_search_config())

    assert run.status == "completed"
    assert run.success_items == 5
    assert run.processed_items == 5
    assert run.total_items == 5
    assert run.error_items == 0
    assert run.result["final_text"] == "Created five contacts."
    assert run.result["budget_exhausted"] is False
    assert run.completed_at is not None

    steps = await ledger.list_steps(run.id)
    assert [s.step_index for s in steps] == list(range(len(steps)))
    assert run.result["steps_count"] == len(steps)
    assert steps[0].step_type == "thinking"
    assert [s.tool for s in steps if s.step_type == "tool_call"] == ["create_contact"] * 5
    creates = [s for s in steps if s.step_type == "contact_create"]
    assert [s.status for s in creates] == ["completed"] * 5
    assert sorted(c.name for c in await repo.list_contacts()) == sorted(PEOPLE)


@pytest.mark.asyncio
async def test_duplicate_contact_is_skipped(make_runner, ledger, repo):
    await repo.save_contact(Contact(name="Ada Lovelace"))
    model = scripted([call("create_contact", name="ada lovelace"), call("create_contact", name="Grace Hopper")])

    run = await make_runner(model).run(_search_config())

    assert run.status == "completed"
    assert (run.success_items, run.skipped_items, run.processed_items) == (1, 1, 2)
    skipped = [s for s in await ledger.list_steps(run.id) if s.status == "skipped"]
    assert skipped[0].output["matched_by"] == "name"
    assert len(await repo.list_contacts()) == 2


@pytest.mark.asyncio
async def test_search_failure_is_recorded_and_the_run_continues(make_runner, ledger):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("search provider unreachable", request=request)

    search = SearchClient(
        SearchConfig(brave_api_key="key"),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    model = scripted(
        [call("search_web", query="fintech founders berlin")],
        [call("create_contact", name="Ada Lovelace")],
    )
    runner = make_runner(model, search=search)

    run = await runner.run(_search_config())
    await search.aclose()

    assert run.status == "completed"
    assert run.success_items == 1

    steps = await ledger.list_steps(run.id)
    assert not [s for s in steps if s.step_type == "error"]
    searches = [s for s in steps if s.step_type == "web_search"]
    assert [s.status for s in searches] == ["failed"]
    assert "search provider unreachable" in searches[0].error


@pytest.mark.asyncio
async def test_missing_search_provider_is_a_failed_step(make_runner, ledger):
    runner = make_runner(scripted([call("search_web", query="fintech founders berlin")]))

    run = await runner.run(_search_config())

    assert run.status == "completed"
    searches = [s for s in await ledger.list_steps(run.id) if s.step_type == "web_search"]
    assert [s.status for s in searches] == ["failed"]
    assert searches[0].error == "Web search is not configured"


@pytest.mark.asyncio
async def test_model_failure_fails_the_run_with_one_error_step(make_runner, ledger):
    def broken_model(messages, info):
        raise RuntimeError("model backend unavailable")

    run = await make_runner(broken_model).run(_search_config())

    assert run.status == "failed"
    assert run.error_items == 1
    assert run.errors == ["model backend unavailable"]
    assert run.completed_at is not None
    steps = await ledger.list_steps(run.id)
    assert [(s.step_type, s.tool) for s in steps] == [("error", "agent_runner")]


@pytest.mark.asyncio
async def test_budget_exhaustion_completes_the_run(make_runner, ledger):
    model = scripted(
        [text("Starting."), call("report_progress", processed=1)],
        [call("report_progress", processed=2)],
    )

    run = await make_runner(model).run(
        AgentRunConfig(workflow_type=WorkflowType.SEARCH, max_steps=1)
    )

    assert run.status == "completed"
    assert run.result["budget_exhausted"] is True
    assert run.result["final_text"] == "Starting."
    progress = [s for s in await ledger.list_steps(run.id) if s.tool == "update_progress"]
    assert len(progress) == 1


@pytest.mark.asyncio
async def test_run_records_tokens_and_cost(make_runner):
    run = await make_runner(scripted()).run(AgentRunConfig(workflow_type=WorkflowType.SEARCH))

    assert run.input_tokens > 0
    assert run.output_tokens > 0
    assert run.model == DEFAULT_MODEL
    assert run.cost_usd == pytest.approx(compute_cost(DEFAULT_MODEL, run.input_tokens, run.output_tokens))


def test_compute_cost_falls_back_to_default_rates():
    rates = COST_RATES[DEFAULT_MODEL]
    expected = (1_000_000 * rates["input"] + 500_000 * rates["output"]) / 1_000_000
    assert compute_cost("some-unknown-model", 1_000_000, 500_000) == pytest.approx(expected)
    assert compute_cost("claude-haiku-4-5-20251001", 1_000_000, 0) == pytest.approx(0.80)


@pytest.mark.asyncio
async def test_fetch_escalation_is_recorded(make_runner, ledger, session_manager, fake_playwright):
    fake_playwright.routes["https://app.acme.io/team"] = {
        "title": "Acme Team",
        "text": "Ada Lovelace, CTO. Grace Hopper, VP Engineering. " * 5,
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html><body><noscript>Please enable JavaScript</noscript></body></html>")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    runner = make_runner(
        scripted([call("fetch_url", url="https://app.acme.io/team")]),
        browser=session_manager,
        http_client=client,
    )

    run = await runner.run(_search_config())
    await client.aclose()

    assert run.status == "completed"
    steps = await ledger.list_steps(run.id)
    routing = [s for s in steps if s.step_type == "routing_decision"]
    assert len(routing) == 2
    assert routing[1].output["escalation"] is True
    assert routing[1].output["reason"] == ESCALATION_REASON
    assert [s.status for s in steps if s.step_type == "browser_scrape"] == ["completed"]


@pytest.mark.asyncio
async def test_fetch_without_escalation(make_runner, ledger):
    body = "Acme is a developer tools company based in Berlin with forty engineers. " * 4

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=f"<html><body><article>{body}</article></body></html>")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    runner = make_runner(scripted([call("fetch_url", url="https://acme.io/about")]), http_client=client)

    run = await runner.run(_search_config())
    await client.aclose()

    steps = await ledger.list_steps(run.id)
    assert len([s for s in steps if s.step_type == "routing_decision"]) == 1
    assert not [s for s in steps if s.step_type == "browser_scrape"]


@pytest.mark.asyncio
async def test_prune_run_summarizes_archives(make_runner, repo):
    keep = Contact(name="Ada Lovelace", company="Acme")
    drop = Contact(name="Grace Hopper", company="Elsewhere")
    await repo.save_contact(keep)
    await repo.save_contact(drop)
    model = scripted([call("archive_contact", contact_id=drop.id, reason="left Acme")])

    run = await make_runner(model).run(
        AgentRunConfig(
            workflow_type=WorkflowType.PRUNE,
            task=parse_task_config("prune", {"company_name": "Acme"}),
        )
    )

    summary = run.result["prune_result"]
    assert summary["evaluated"] == 2
    assert summary["archived"] == 1
    assert summary["kept"] == 1
    assert summary["archived_contacts"] == [
        {"id": drop.id, "name": "Grace Hopper", "reason": "left Acme"}
    ]
    assert [c.id for c in await repo.list_contacts()] == [keep.id]


@pytest.mark.asyncio
async def test_template_run_advances_linked_goal(make_runner, repo):
    template = WorkflowTemplate(name="Berlin founders", workflow_type=WorkflowType.SEARCH)
    await repo.save_template(template)
    tracker = GoalTracker(repo)
    goal = await tracker.create_goal("Three leads", GoalType.LEAD_GENERATION, target_value=3)
    await tracker.link_template(goal.id, template.id)

    model = scripted([call("create_contact", name=n) for n in PEOPLE[:3]])
    run = await make_runner(model).run(
        AgentRunConfig(workflow_type=WorkflowType.SEARCH, template_id=template.id)
    )

    assert run.status == "completed"
    assert run.trigger == "template"
    stored_goal = await repo.get_goal(goal.id)
    assert stored_goal.current_value == 3
    assert stored_goal.status == GoalStatus.ACHIEVED.value
    history = await repo.list_goal_progress(goal.id)
    assert history[0].source == run.id

    stored_template = await repo.get_template(template.id)
    assert stored_template.total_runs == 1
    assert stored_template.last_run_at is not None


@pytest.mark.asyncio
async def test_system_prompt_reaches_the_model(make_runner):
    seen = {}

    def respond(messages, info):
        seen["prompt"] = "".join(
            getattr(part, "content", "") for part in messages[0].parts if part.part_kind == "system-prompt"
        )
        return scripted()(messages, info)

    await make_runner(respond).run(
        AgentRunConfig(workflow_type=WorkflowType.ENRICH, system_prompt="Only use public sources.")
    )

    assert seen["prompt"].startswith("Only use public sources.")
    assert "AUTONOMOUS" in seen["prompt"]
