from types import SimpleNamespace

import httpx
import pytest
import pytest_asyncio

from volo.agents import AgentDeps
from volo.agents.router import DomainThrottle
from volo.agents.tools import (
    archive_contact,
    create_contact,
    engage_post,
    enrich_contact,
    enrichment_score,
    fetch_url,
    publish_content,
    report_progress,
    save_draft,
    scrape_url,
    split_thread,
)
from volo.agents.tools.acquisition import ESCALATION_REASON
from volo.browser.actions import EngagementResult, PublishError, PublishResult
from volo.contracts import Platform, RunStatus, WorkflowType
from volo.persistence import Contact

LONG_TEXT = "Acme builds developer tools for data teams around the world. " * 4


def _ctx(deps: AgentDeps):
    return SimpleNamespace(deps=deps)


@pytest_asyncio.fixture
async def deps(ledger, repo):
    run = await ledger.create_run(WorkflowType.SEARCH, status=RunStatus.RUNNING)
    return AgentDeps(
        run_id=run.id,
        workflow_type=WorkflowType.SEARCH,
        ledger=ledger,
        repository=repo,
        throttle=DomainThrottle(delay=0),
    )


async def _steps(deps):
    return [(s.step_type, s.status) for s in await deps.ledger.list_steps(deps.run_id)]


def test_enrichment_score():
    assert enrichment_score(Contact(name="Jane")) == 10
    full = Contact(
        name="Jane",
        email="j@acme.io",
        company="Acme",
        title="CTO",
        headline="Builder",
        phone="+1",
        location="Berlin",
        website="https://jane.dev",
        bio="Engineer",
    )
    assert enrichment_score(full) == 100


def test_split_thread():
    assert split_thread("one\n---\ntwo\n---\n") == ["one", "two"]
    assert split_thread("single post") == ["single post"]


@pytest.mark.asyncio
async def test_create_contact_and_dedupe(deps, repo):
    created = await create_contact(_ctx(deps), "Jane Doe", email="jane@acme.io", company="Acme")
    assert created["status"] == "created"
    stored = await repo.get_contact(created["contact_id"])
    assert stored.enrichment_score == 45

    by_name = await create_contact(_ctx(deps), "jane doe")
    assert by_name["status"] == "duplicate"
    assert by_name["contact_id"] == created["contact_id"]

    by_email = await create_contact(_ctx(deps), "J. Doe", email="jane@acme.io")
    assert by_email["status"] == "duplicate"

    assert len(await repo.list_contacts()) == 1
    assert await _steps(deps) == [
        ("contact_create", "completed"),
        ("contact_create", "skipped"),
        ("contact_create", "skipped"),
    ]
    skipped = (await deps.ledger.list_steps(deps.run_id))[1]
    assert skipped.output["reason"] == "duplicate"


@pytest.mark.asyncio
async def test_enrich_contact_fills_gaps_only(deps, repo):
    contact = Contact(name="Jane Doe", company="Acme", tags=["lead"])
    await repo.save_contact(contact)

    result = await enrich_contact(
        _ctx(deps), contact.id, company="Other Co", title="CTO", tags=["lead", "fintech"]
    )

    assert result["status"] == "enriched"
    assert result["fields_updated"] == ["tags", "title"]
    stored = await repo.get_contact(contact.id)
    assert stored.company == "Acme"
    assert stored.title == "CTO"
    assert stored.tags == ["lead", "fintech"]
    assert stored.enrichment_score == 40

    again = await enrich_contact(_ctx(deps), contact.id, title="VP")
    assert again["status"] == "unchanged"

    missing = await enrich_contact(_ctx(deps), "nope", title="CTO")
    assert missing["status"] == "error"

    assert await _steps(deps) == [
        ("contact_merge", "completed"),
        ("contact_merge", "skipped"),
        ("contact_merge", "failed"),
    ]


@pytest.mark.asyncio
async def test_archive_contact(deps, repo):
    contact = Contact(name="Jane Doe")
    await repo.save_contact(contact)

    result = await archive_contact(_ctx(deps), contact.id, "left the company")
    assert result["status"] == "archived"
    stored = await repo.get_contact(contact.id)
    assert stored.archived_at is not None
    assert stored.archive_reason == "left the company"
    assert stored.archived_by_run_id == deps.run_id

    assert (await archive_contact(_ctx(deps), contact.id, "again"))["status"] == "already_archived"
    assert (await archive_contact(_ctx(deps), "nope", "gone"))["status"] == "error"
    assert await _steps(deps) == [
        ("contact_archive", "completed"),
        ("contact_archive", "skipped"),
        ("contact_archive", "failed"),
    ]


@pytest.mark.asyncio
async def test_fetch_url_static_page(deps):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=f"<html><title>Acme</title><body><main>{LONG_TEXT}</main></body></html>")

    deps.http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    result = await fetch_url(_ctx(deps), "https://acme.io/about")
    await deps.http_client.aclose()

    assert result["source"] == "url_fetch"
    assert result["title"] == "Acme"
    assert await _steps(deps) == [
        ("routing_decision", "completed"),
        ("url_fetch", "completed"),
    ]


@pytest.mark.asyncio
async def test_fetch_url_escalates_thin_pages(deps, session_manager, fake_playwright):
    fake_playwright.routes["https://app.acme.io"] = {"title": "Acme App", "text": LONG_TEXT}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text='<html><body><div id="root"></div></body></html>')

    deps.http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    deps.browser = session_manager
    result = await fetch_url(_ctx(deps), "https://app.acme.io")
    await deps.http_client.aclose()

    assert result["source"] == "browser_scrape"
    assert result["title"] == "Acme App"
    steps = await deps.ledger.list_steps(deps.run_id)
    assert [s.step_type for s in steps] == [
        "routing_decision",
        "url_fetch",
        "routing_decision",
        "browser_scrape",
    ]
    assert steps[2].output == {
        "strategy": "browser_scrape",
        "escalation": True,
        "reason": ESCALATION_REASON,
    }


@pytest.mark.asyncio
async def test_fetch_url_escalation_without_browser_fails_the_step(deps):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html><body>Loading...</body></html>")

    deps.http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    result = await fetch_url(_ctx(deps), "https://acme.io")
    await deps.http_client.aclose()

    assert "error" in result
    assert (await _steps(deps))[-1] == ("browser_scrape", "failed")


@pytest.mark.asyncio
async def test_fetch_url_routes_social_sites_to_browser(deps, session_manager, fake_playwright):
    fake_playwright.routes["https://x.com/jack"] = {"title": "jack / X", "text": LONG_TEXT}
    deps.browser = session_manager

    result = await fetch_url(_ctx(deps), "https://x.com/jack")

    assert result["source"] == "browser_scrape"
    assert await _steps(deps) == [
        ("routing_decision", "completed"),
        ("browser_scrape", "completed"),
    ]


@pytest.mark.asyncio
async def test_fetch_url_applies_the_batch_limit_across_calls(
    deps, session_manager, fake_playwright, x_session
):
    session_manager.store.save(x_session)
    session_manager.anti_detection.batch_limit = 2
    for handle in ("a", "b", "c"):
        fake_playwright.routes[f"https://x.com/{handle}"] = {"title": handle, "text": LONG_TEXT}
    deps.browser = session_manager

    for handle in ("a", "b"):
        assert (await fetch_url(_ctx(deps), f"https://x.com/{handle}"))["source"] == "browser_scrape"
    result = await fetch_url(_ctx(deps), "https://x.com/c")

    assert "Batch limit of 2 pages" in result["error"]
    assert deps.pages_scraped == {Platform.X: 2}
    scrapes = [s.status for s in await deps.ledger.list_steps(deps.run_id) if s.step_type == "browser_scrape"]
    assert scrapes == ["completed", "completed", "failed"]


@pytest.mark.asyncio
async def test_scrape_url_waits_for_selector(deps, session_manager, fake_playwright):
    fake_playwright.routes["https://acme.io/team"] = {
        "title": "Team",
        "text": LONG_TEXT,
        "selectors": {".team"},
    }
    deps.browser = session_manager

    result = await scrape_url(_ctx(deps), "https://acme.io/team", selector=".team")

    assert result["title"] == "Team"
    step = (await deps.ledger.list_steps(deps.run_id))[-1]
    assert step.input == {"selector": ".team"}


@pytest.mark.asyncio
async def test_engage_post(deps, session_manager, monkeypatch):
    deps.browser = session_manager
    calls = []

    async def fake_engage(manager, platform, post_url, action, reply_text=None):
        calls.append((platform, action))
        return EngagementResult(action != "reply", action, post_url, None if action != "reply" else "Element not found")

    monkeypatch.setattr("volo.agents.tools.content.browser_engage", fake_engage)

    liked = await engage_post(_ctx(deps), "x", "https://x.com/a/status/1", "like")
    replied = await engage_post(_ctx(deps), "x", "https://x.com/a/status/1", "reply", "Nice")

    assert liked["success"] is True
    assert replied == {"success": False, "action": "reply", "error": "Element not found"}
    assert await _steps(deps) == [
        ("post_engagement", "completed"),
        ("post_engagement", "failed"),
    ]


@pytest.mark.asyncio
async def test_engage_post_without_session(deps, session_manager):
    deps.browser = session_manager
    result = await engage_post(_ctx(deps), "linkedin", "https://www.linkedin.com/feed/update/1", "like")
    assert result["success"] is False
    assert await _steps(deps) == [("post_engagement", "failed")]


@pytest.mark.asyncio
async def test_save_and_publish_draft(deps, repo, session_manager, monkeypatch):
    deps.browser = session_manager
    published_texts = []

    async def fake_publish(manager, texts):
        published_texts.append(texts)
        return PublishResult(True, "https://x.com/me/status/123", ["123"])

    monkeypatch.setattr("volo.agents.tools.content.publish_thread", fake_publish)

    draft = await save_draft(_ctx(deps), "first\n---\nsecond", content_type="thread")
    result = await publish_content(_ctx(deps), draft["content_id"])

    assert result == {"status": "published", "post_url": "https://x.com/me/status/123"}
    assert published_texts == [["first", "second"]]
    item = await repo.get_content(draft["content_id"])
    assert item.status == "published"
    assert item.platform_post_id == "123"
    assert await _steps(deps) == [
        ("content_create", "completed"),
        ("content_publish", "completed"),
    ]


@pytest.mark.asyncio
async def test_publish_failures(deps, repo, session_manager, monkeypatch):
    async def failing_publish(manager, texts):
        raise PublishError("session_expired", "Compose button not found")

    monkeypatch.setattr("volo.agents.tools.content.publish_thread", failing_publish)

    linkedin = await save_draft(_ctx(deps), "hello", platform="linkedin")
    x_draft = await save_draft(_ctx(deps), "hello")

    assert (await publish_content(_ctx(deps), "missing"))["status"] == "failed"
    assert "not automated" in (await publish_content(_ctx(deps), linkedin["content_id"]))["error"]
    assert "not configured" in (await publish_content(_ctx(deps), x_draft["content_id"]))["error"]

    deps.browser = session_manager
    result = await publish_content(_ctx(deps), x_draft["content_id"])
    assert result["error"] == "Compose button not found"
    assert (await repo.get_content(x_draft["content_id"])).status == "failed"

    statuses = [s for t, s in await _steps(deps) if t == "content_publish"]
    assert statuses == ["failed"] * 4


@pytest.mark.asyncio
async def test_report_progress_updates_run(deps):
    assert await report_progress(_ctx(deps), 3, total=10, message="halfway") == "Progress recorded"

    run = await deps.ledger.get_run(deps.run_id)
    assert (run.processed_items, run.total_items) == (3, 10)
    step = (await deps.ledger.list_steps(deps.run_id))[-1]
    assert step.step_type == "thinking"
    assert step.tool == "update_progress"
