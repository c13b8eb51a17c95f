"""Tools exposed to the agent loop."""

from .acquisition import fetch_url, scrape_url, search_web
from .contacts import archive_contact, create_contact, enrich_contact, enrichment_score
from .content import engage_post, publish_content, save_draft, split_thread
from .progress import report_progress

TOOLS = [
    search_web,
    fetch_url,
    scrape_url,
    create_contact,
    enrich_contact,
    archive_contact,
    engage_post,
    save_draft,
    publish_content,
    report_progress,
]

__all__ = [
    "TOOLS",
    "archive_contact",
    "create_contact",
    "engage_post",
    "enrich_contact",
    "enrichment_score",
    "fetch_url",
    "publish_content",
    "report_progress",
    "save_draft",
    "scrape_url",
    "search_web",
    "split_thread",
]
