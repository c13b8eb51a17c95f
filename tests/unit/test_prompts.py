import pytest

from volo.agents.prompts import (
    DEFAULT_SYSTEM_PROMPTS,
    EXECUTION_CONTEXT,
    FALLBACK_TASK,
    build_system_prompt,
    build_user_prompt,
)
from volo.contracts import AgentRunConfig, WorkflowType, parse_task_config
from volo.persistence import Contact, WorkflowTemplate
from volo.persistence.models import utcnow


def test_system_prompt_precedence():
    template = WorkflowTemplate(
        name="Founders", workflow_type=WorkflowType.SEARCH, system_prompt="Template prompt"
    )

    override = build_system_prompt(WorkflowType.SEARCH, "Override prompt", template)
    assert override.startswith("Override prompt")

    from_template = build_system_prompt(WorkflowType.SEARCH, None, template)
    assert from_template.startswith("Template prompt")

    default = build_system_prompt(WorkflowType.SEARCH)
    assert default.startswith(DEFAULT_SYSTEM_PROMPTS[WorkflowType.SEARCH])


@pytest.mark.parametrize("workflow_type", ["search", "enrich", "prune", "agent", "sequence"])
def test_system_prompt_always_states_autonomy(workflow_type):
    prompt = build_system_prompt(workflow_type, "Custom")
    assert EXECUTION_CONTEXT in prompt
    assert "NO human in the loop" in prompt


@pytest.mark.asyncio
async def test_search_prompt_lists_known_contacts(repo):
    await repo.save_contact(Contact(name="Jane Doe"))
    await repo.save_contact(Contact(name="Old Lead", archived_at=utcnow()))
    config = AgentRunConfig(
        workflow_type=WorkflowType.SEARCH,
        task=parse_task_config("search", {"max_results": 5, "target_domains": ["github.com"]}),
    )

    prompt = await build_user_prompt(config, repo)

    assert "Find up to 5 new people" in prompt
    assert "github.com" in prompt
    assert "Jane Doe" in prompt
    assert "Old Lead" in prompt


@pytest.mark.asyncio
async def test_enrich_prompt_filters_by_score(repo):
    await repo.save_contact(Contact(name="Sparse", enrichment_score=10))
    await repo.save_contact(Contact(name="Complete", enrichment_score=90))
    config = AgentRunConfig(
        workflow_type=WorkflowType.ENRICH,
        task=parse_task_config("enrich", {"max_enrichment_score": 50}),
    )

    prompt = await build_user_prompt(config, repo)

    assert "Contacts to enrich" in prompt
    assert "Sparse" in prompt
    assert "Complete" not in prompt


@pytest.mark.asyncio
async def test_prune_prompt_includes_criteria(repo):
    await repo.save_contact(Contact(name="Jane Doe", company="Acme"))
    config = AgentRunConfig(
        workflow_type=WorkflowType.PRUNE,
        task=parse_task_config("prune", {"criteria": "Still works in fintech", "company_name": "Acme"}),
    )

    prompt = await build_user_prompt(config, repo)

    assert "Contacts to evaluate" in prompt
    assert "Still works in fintech" in prompt
    assert "Acme" in prompt


@pytest.mark.asyncio
async def test_agent_prompt_without_topics(repo):
    config = AgentRunConfig(
        workflow_type=WorkflowType.AGENT,
        task=parse_task_config("agent", {"tone": "friendly", "max_replies": 3}),
    )

    prompt = await build_user_prompt(config, repo)

    assert "No topics configured" in prompt
    assert "Tone: friendly" in prompt
    assert "Maximum replies: 3" in prompt


@pytest.mark.asyncio
async def test_template_description_leads_the_prompt(repo):
    template = WorkflowTemplate(
        name="Fintech", workflow_type=WorkflowType.PRUNE, description="Keep only fintech buyers."
    )
    config = AgentRunConfig(workflow_type=WorkflowType.PRUNE)

    prompt = await build_user_prompt(config, repo, template)

    assert prompt.startswith("## Task\nKeep only fintech buyers.")


@pytest.mark.asyncio
async def test_empty_context_falls_back(repo):
    config = AgentRunConfig(workflow_type=WorkflowType.ENRICH)
    assert await build_user_prompt(config, repo) == FALLBACK_TASK
