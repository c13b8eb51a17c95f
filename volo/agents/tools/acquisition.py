"""Search, fetch and scrape tools."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from playwright.async_api import Error as PlaywrightError
from pydantic_ai import RunContext

from ...browser import browser_scrape
from ...contracts import StepStatus, StepType
from ...errors import BatchLimitError, SessionInvalidError
from ..deps import AgentDeps
from ..router import route_url, should_escalate, url_fetch
from ..search import NoSearchProviderError

logger = logging.getLogger(__name__)

ESCALATION_REASON = "url_fetch returned insufficient content, escalating to browser"


async def search_web(ctx: RunContext[AgentDeps], query: str, count: int = 5) -> dict[str, Any]:
    """Search the web and return titles, URLs and snippets.

    Args:
        query: Search query, e.g. "VP engineering fintech startups Berlin".
        count: Number of results to return (max 20).
    """
    deps = ctx.deps
    try:
        if deps.search is None:
            raise NoSearchProviderError("Web search is not configured")
        response = await deps.search.search(query, count, workflow_type=deps.workflow_type)
    except (httpx.HTTPError, NoSearchProviderError) as exc:
        error = str(exc) or type(exc).__name__
        logger.warning(f"search_web failed for {query!r}: {error}")
        await deps.ledger.record_step(
            deps.run_id,
            StepType.WEB_SEARCH,
            StepStatus.FAILED,
            tool="search_web",
            input={"query": query, "count": count},
            error=error,
        )
        return {"results": [], "error": error}

    results = [
        {"title": hit.title, "url": hit.url, "snippet": hit.snippet}
        for hit in response.results
    ]
    await deps.ledger.record_step(
        deps.run_id,
        StepType.WEB_SEARCH,
        StepStatus.COMPLETED,
        tool="search_web",
        input={"query": query, "count": count},
        output={
            "provider": response.provider,
            "result_count": len(results),
            "urls": [r["url"] for r in results],
        },
    )
    return {"provider": response.provider, "answer": response.answer, "results": results}


async def _scrape(deps: AgentDeps, url: str, selector: Optional[str]) -> dict[str, Any]:
    if deps.browser is None:
        error = "Browser automation is not configured"
        await deps.ledger.record_step(
            deps.run_id,
            StepType.BROWSER_SCRAPE,
            StepStatus.FAILED,
            tool="browser_scrape",
            url=url,
            error=error,
        )
        return {"url": url, "error": error}

    try:
        result = await browser_scrape(url, deps.browser, selector, deps.pages_scraped)
    except SessionInvalidError:
        raise
    except (PlaywrightError, BatchLimitError) as exc:
        logger.warning(f"browser_scrape failed for {url}: {exc}")
        await deps.ledger.record_step(
            deps.run_id,
            StepType.BROWSER_SCRAPE,
            StepStatus.FAILED,
            tool="browser_scrape",
            url=url,
            error=str(exc),
        )
        return {"url": url, "error": str(exc)}

    await deps.ledger.record_step(
        deps.run_id,
        StepType.BROWSER_SCRAPE,
        StepStatus.COMPLETED,
        tool="browser_scrape",
        url=url,
        input={"selector": selector} if selector else None,
        output={"title": result.title, "content_length": result.content_length},
        duration_ms=result.duration_ms,
    )
    return {
        "url": url,
        "title": result.title,
        "content": result.content,
        "source": "browser_scrape",
    }


async def fetch_url(ctx: RunContext[AgentDeps], url: str) -> dict[str, Any]:
    """Read a web page and return its title, description and main text.

    Static pages are fetched directly; JavaScript-heavy pages are rendered in
    a browser automatically.

    Args:
        url: Absolute URL of the page.
    """
    deps = ctx.deps
    decision = route_url(url)
    await deps.ledger.record_step(
        deps.run_id,
        StepType.ROUTING_DECISION,
        StepStatus.COMPLETED,
        tool="router",
        url=url,
        output={"strategy": decision.strategy, "reason": decision.reason},
    )
    if decision.strategy == "browser_scrape":
        return await _scrape(deps, url, None)

    result = await url_fetch(url, deps.http_client, deps.throttle)
    await deps.ledger.record_step(
        deps.run_id,
        StepType.URL_FETCH,
        StepStatus.FAILED if result.error else StepStatus.COMPLETED,
        tool="url_fetch",
        url=url,
        output={
            "title": result.title,
            "content_length": result.content_length,
            "needs_browser": result.needs_browser,
        },
        error=result.error,
        duration_ms=result.duration_ms,
    )

    if result.needs_browser and should_escalate(result.content, result.content_length):
        await deps.ledger.record_step(
            deps.run_id,
            StepType.ROUTING_DECISION,
            StepStatus.COMPLETED,
            tool="router",
            url=url,
            output={
                "strategy": "browser_scrape",
                "escalation": True,
                "reason": ESCALATION_REASON,
            },
        )
        return await _scrape(deps, url, None)

    return {
        "url": url,
        "title": result.title,
        "description": result.description,
        "content": result.content,
        "source": "url_fetch",
    }


async def scrape_url(
    ctx: RunContext[AgentDeps], url: str, selector: Optional[str] = None
) -> dict[str, Any]:
    """Render a page in a real browser and return its visible text.

    Args:
        url: Absolute URL of the page.
        selector: Optional CSS selector to wait for before reading the page.
    """
    return await _scrape(ctx.deps, url, selector)
