"""CRM tools: create, enrich and archive contacts."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic_ai import RunContext

from ...contracts import StepStatus, StepType
from ...persistence import Contact
from ...persistence.models import utcnow
from ..deps import AgentDeps

logger = logging.getLogger(__name__)

# Weights sum to 100.
ENRICHMENT_WEIGHTS = {
    "name": 10,
    "email": 20,
    "company": 15,
    "title": 15,
    "headline": 10,
    "phone": 10,
    "location": 5,
    "website": 5,
    "bio": 10,
}


def enrichment_score(contact: Contact) -> int:
    return sum(weight for name, weight in ENRICHMENT_WEIGHTS.items() if getattr(contact, name))


def _summary(contact: Contact) -> dict[str, Any]:
    return {
        "id": contact.id,
        "name": contact.name,
        "email": contact.email,
        "company": contact.company,
        "title": contact.title,
        "archived": contact.archived_at is not None,
    }


async def create_contact(
    ctx: RunContext[AgentDeps],
    name: str,
    email: Optional[str] = None,
    company: Optional[str] = None,
    title: Optional[str] = None,
    headline: Optional[str] = None,
    location: Optional[str] = None,
    website: Optional[str] = None,
    bio: Optional[str] = None,
    platform: str = "x",
    tags: Optional[list[str]] = None,
) -> dict[str, Any]:
    """Add a person to the CRM.

    If a contact with the same email, or the same name ignoring case, already
    exists, nothing is created and the existing contact is returned.

    Args:
        name: Full name of the person.
        email: Work email if known.
        company: Current employer.
        title: Current job title.
        headline: Short profile headline.
        location: City or region.
        website: Personal or profile URL.
        bio: One or two sentences about the person.
        platform: Platform the person was found on ("x" or "linkedin").
        tags: Free-form labels.
    """
    deps = ctx.deps
    email = email.strip() if email else None
    async with deps.contact_lock:
        match = await deps.repository.find_contact(email=email, name=name)
        if match is not None:
            existing, matched_by = match
            logger.info(f"Skipping duplicate contact {name!r} (matched by {matched_by})")
            await deps.ledger.record_step(
                deps.run_id,
                StepType.CONTACT_CREATE,
                StepStatus.SKIPPED,
                tool="create_contact",
                contact_id=existing.id,
                input={"name": name, "email": email},
                output={
                    "contact_id": existing.id,
                    "name": existing.name,
                    "matched_by": matched_by,
                    "reason": "duplicate",
                },
            )
            return {
                "status": "duplicate",
                "contact_id": existing.id,
                "message": f"Contact already exists (matched by {matched_by}). Skipped creation.",
                "contact": _summary(existing),
            }

        contact = Contact(
            name=name.strip(),
            email=email,
            company=company,
            title=title,
            headline=headline,
            location=location,
            website=website,
            bio=bio,
            platform=platform or "x",
            tags=tags or [],
        )
        contact.enrichment_score = enrichment_score(contact)
        await deps.repository.save_contact(contact)

    await deps.ledger.record_step(
        deps.run_id,
        StepType.CONTACT_CREATE,
        StepStatus.COMPLETED,
        tool="create_contact",
        contact_id=contact.id,
        input={"name": name, "email": email, "company": company},
        output={"contact_id": contact.id, "name": contact.name},
    )
    return {"status": "created", "contact_id": contact.id}


async def enrich_contact(
    ctx: RunContext[AgentDeps],
    contact_id: str,
    email: Optional[str] = None,
    company: Optional[str] = None,
    title: Optional[str] = None,
    headline: Optional[str] = None,
    phone: Optional[str] = None,
    location: Optional[str] = None,
    website: Optional[str] = None,
    bio: Optional[str] = None,
    tags: Optional[list[str]] = None,
) -> dict[str, Any]:
    """Fill missing fields on an existing contact. Fields that already have a value are kept.

    Args:
        contact_id: ID of the contact to enrich.
        email: Work email.
        company: Current employer.
        title: Current job title.
        headline: Short profile headline.
        phone: Phone number.
        location: City or region.
        website: Personal or profile URL.
        bio: One or two sentences about the person.
        tags: Labels to add.
    """
    deps = ctx.deps
    contact = await deps.repository.get_contact(contact_id)
    if contact is None:
        error = f"Contact {contact_id} not found"
        await deps.ledger.record_step(
            deps.run_id,
            StepType.CONTACT_MERGE,
            StepStatus.FAILED,
            tool="enrich_contact",
            contact_id=contact_id,
            error=error,
        )
        return {"status": "error", "error": error}

    proposed = {
        "email": email,
        "company": company,
        "title": title,
        "headline": headline,
        "phone": phone,
        "location": location,
        "website": website,
        "bio": bio,
    }
    changes: dict[str, Any] = {
        name: value
        for name, value in proposed.items()
        if value and not getattr(contact, name)
    }
    new_tags = [t for t in tags or [] if t not in contact.tags]
    if new_tags:
        changes["tags"] = contact.tags + new_tags

    if not changes:
        await deps.ledger.record_step(
            deps.run_id,
            StepType.CONTACT_MERGE,
            StepStatus.SKIPPED,
            tool="enrich_contact",
            contact_id=contact.id,
            output={"contact_id": contact.id, "fields_updated": [], "reason": "nothing new"},
        )
        return {"status": "unchanged", "contact_id": contact.id}

    updated = contact.model_copy(update={**changes, "updated_at": utcnow()})
    updated.enrichment_score = enrichment_score(updated)
    await deps.repository.save_contact(updated)

    fields_updated = sorted(changes)
    await deps.ledger.record_step(
        deps.run_id,
        StepType.CONTACT_MERGE,
        StepStatus.COMPLETED,
        tool="enrich_contact",
        contact_id=contact.id,
        input={k: v for k, v in proposed.items() if v},
        output={
            "contact_id": contact.id,
            "fields_updated": fields_updated,
            "enrichment_score": updated.enrichment_score,
        },
    )
    return {
        "status": "enriched",
        "contact_id": contact.id,
        "fields_updated": fields_updated,
        "enrichment_score": updated.enrichment_score,
    }


async def archive_contact(ctx: RunContext[AgentDeps], contact_id: str, reason: str) -> dict[str, Any]:
    """Archive a contact that no longer matches the criteria.

    Args:
        contact_id: ID of the contact to archive.
        reason: Why the contact is being archived, e.g. "left the company".
    """
    deps = ctx.deps
    contact = await deps.repository.get_contact(contact_id)
    if contact is None:
        error = f"Contact {contact_id} not found"
        await deps.ledger.record_step(
            deps.run_id,
            StepType.CONTACT_ARCHIVE,
            StepStatus.FAILED,
            tool="archive_contact",
            contact_id=contact_id,
            error=error,
        )
        return {"status": "error", "error": error}

    if contact.archived_at is not None:
        await deps.ledger.record_step(
            deps.run_id,
            StepType.CONTACT_ARCHIVE,
            StepStatus.SKIPPED,
            tool="archive_contact",
            contact_id=contact.id,
            output={"contact_id": contact.id, "name": contact.name, "reason": "already archived"},
        )
        return {"status": "already_archived", "contact_id": contact.id}

    now = utcnow()
    archived = contact.model_copy(
        update={
            "archived_at": now,
            "archive_reason": reason,
            "archived_by_run_id": deps.run_id,
            "updated_at": now,
        }
    )
    await deps.repository.save_contact(archived)
    await deps.ledger.record_step(
        deps.run_id,
        StepType.CONTACT_ARCHIVE,
        StepStatus.COMPLETED,
        tool="archive_contact",
        contact_id=contact.id,
        input={"reason": reason},
        output={"contact_id": contact.id, "name": contact.name, "reason": reason},
    )
    return {"status": "archived", "contact_id": contact.id}
