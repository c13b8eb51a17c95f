"""System and user prompt assembly for agent runs."""

from __future__ import annotations

from typing import Optional

from ..constants import DEDUPE_NAME_LIMIT
from ..contracts import (
    AgentRunConfig,
    AgentTaskConfig,
    EnrichTaskConfig,
    PruneTaskConfig,
    SearchTaskConfig,
    WorkflowType,
)
from ..persistence import Contact, VoloRepository, WorkflowTemplate

DEFAULT_SYSTEM_PROMPTS: dict[WorkflowType, str] = {
    WorkflowType.SEARCH: (
        "You are a prospecting researcher. Find people who match the task, "
        "verify them from their own pages, and create a contact for each "
        "qualified person you find."
    ),
    WorkflowType.ENRICH: (
        "You are a data enrichment specialist. For each contact, research "
        "public sources and fill in missing fields such as title, company, "
        "email, location and website. Never overwrite data that is already set."
    ),
    WorkflowType.PRUNE: (
        "You are a CRM hygiene analyst. Check whether each contact still "
        "matches the criteria and archive the ones that no longer do, giving "
        "a clear reason for every archive."
    ),
    WorkflowType.AGENT: (
        "You are a social media engagement agent. Find relevant conversations, "
        "engage thoughtfully and draft content that fits the configured tone."
    ),
    WorkflowType.SEQUENCE: (
        "You are running an outreach sequence. Work through the configured "
        "steps, engaging and publishing as instructed."
    ),
}

GENERIC_SYSTEM_PROMPT = (
    "You are an autonomous research agent. Use the available tools to complete the task."
)

EXECUTION_CONTEXT = """
## Execution Context
You are running as an AUTONOMOUS background agent. There is NO human in the loop:
nobody will answer questions or confirm actions while you work. Make reasonable
decisions on your own, use the tools to act, and finish with a short summary of
what you did.
"""

TOOLS_SECTION = """
## Tools
- search_web: search the web for pages about a person, company or topic
- fetch_url: read a web page (static fetch, escalates to a browser when needed)
- scrape_url: render a page in a browser, optionally waiting for a CSS selector
- create_contact: add a person to the CRM (duplicates are detected for you)
- enrich_contact: fill missing fields on an existing contact
- archive_contact: archive a contact that no longer fits, with a reason
- engage_post: like, reply to or repost a post on X or LinkedIn
- save_draft: save a draft post for later review
- publish_content: publish a saved draft
- report_progress: report how many items you have processed

## Guidelines
- Verify facts from at least one source page before recording them.
- Keep going until the task is done; do not stop to ask for confirmation.
- Report progress after each meaningful batch of work.
"""

FALLBACK_TASK = "Complete the workflow task using the available tools."


def build_system_prompt(
    workflow_type: WorkflowType | str,
    override: Optional[str] = None,
    template: Optional[WorkflowTemplate] = None,
) -> str:
    base = (
        override
        or (template.system_prompt if template else None)
        or DEFAULT_SYSTEM_PROMPTS.get(WorkflowType(workflow_type), GENERIC_SYSTEM_PROMPT)
    )
    return "\n".join([base.strip(), EXECUTION_CONTEXT, TOOLS_SECTION])


def _format_contact(contact: Contact) -> str:
    fields = [
        f"id={contact.id}",
        f"name={contact.name}",
        f"email={contact.email or '-'}",
        f"company={contact.company or '-'}",
        f"title={contact.title or '-'}",
        f"score={contact.enrichment_score}",
    ]
    return "- " + ", ".join(fields)


async def build_user_prompt(
    config: AgentRunConfig,
    repository: VoloRepository,
    template: Optional[WorkflowTemplate] = None,
) -> str:
    """Task context for the first user message.

    Contact lists and dedupe names are read from the repository at run start.
    """
    sections: list[str] = []
    if template and template.description:
        sections.append(f"## Task\n{template.description}")

    task = config.task
    if isinstance(task, EnrichTaskConfig):
        contacts = [
            c
            for c in await repository.list_contacts()
            if c.enrichment_score <= task.max_enrichment_score
        ][: task.max_contacts]
        if contacts:
            sections.append(
                "## Contacts to enrich\n" + "\n".join(_format_contact(c) for c in contacts)
            )
    elif isinstance(task, PruneTaskConfig):
        contacts = (await repository.list_contacts())[: task.max_contacts]
        if contacts:
            sections.append(
                "## Contacts to evaluate\n" + "\n".join(_format_contact(c) for c in contacts)
            )
        if task.criteria:
            sections.append(f"## Criteria\n{task.criteria}")
        if task.company_name:
            sections.append(f"## Company\nEvaluate contacts against {task.company_name}.")
    elif isinstance(task, SearchTaskConfig):
        lines = [
            f"Find up to {task.max_results} new people. Stop once you have created "
            f"{task.max_results} contacts."
        ]
        if task.target_domains:
            lines.append("Focus on these sites: " + ", ".join(task.target_domains))
        sections.append("## Search targets\n" + "\n".join(lines))
        known = [c.name for c in await repository.list_contacts(include_archived=True)]
        if known:
            sections.append(
                "## Already in CRM (do not add again)\n"
                + ", ".join(known[:DEDUPE_NAME_LIMIT])
            )
    elif isinstance(task, AgentTaskConfig):
        lines = []
        if task.topics:
            lines.append("Topics: " + ", ".join(task.topics))
        else:
            lines.append("No topics configured; pick conversations relevant to the account.")
        if task.tone:
            lines.append(f"Tone: {task.tone}")
        if task.frequency:
            lines.append(f"Frequency: {task.frequency}")
        if task.max_replies is not None:
            lines.append(f"Maximum replies: {task.max_replies}")
        if task.max_engagements is not None:
            lines.append(f"Maximum engagements: {task.max_engagements}")
        if task.platforms:
            lines.append("Platforms: " + ", ".join(p.value for p in task.platforms))
        sections.append("## Configuration\n" + "\n".join(lines))

    return "\n\n".join(sections) if sections else FALLBACK_TASK
