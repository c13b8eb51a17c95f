"""Content acquisition: route URLs to a static fetch or a browser render."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Literal, Optional
from urllib.parse import urlparse

import httpx
import lxml.html
from lxml.etree import ParserError

from ..constants import (
    BROWSER_USER_AGENT,
    CONTENT_LIMIT,
    DOMAIN_DELAY_SECONDS,
    FETCH_TIMEOUT_SECONDS,
    MIN_CONTENT_LENGTH,
)

logger = logging.getLogger(__name__)

Strategy = Literal["url_fetch", "browser_scrape"]

# Static or server-rendered sites that read fine without a browser.
STATIC_DOMAINS = (
    "wikipedia.org",
    "github.com",
    "medium.com",
    "substack.com",
    "dev.to",
    "news.ycombinator.com",
    "reddit.com",
    "crunchbase.com",
)

# Client-rendered apps that return an empty shell to plain HTTP clients.
BROWSER_DOMAINS = (
    "x.com",
    "twitter.com",
    "linkedin.com",
    "instagram.com",
    "facebook.com",
    "threads.net",
)

JS_REQUIRED_MARKERS = (
    "enable javascript",
    "javascript is required",
    "please turn on javascript",
    "loading...",
    "please wait",
)

SPA_MARKERS = (
    "__NEXT_DATA__",
    "__NUXT__",
    "window.__INITIAL_STATE__",
    '<div id="root"></div>',
    '<div id="app"></div>',
    "react-root",
)

STRIPPED_TAGS = ("script", "style", "nav", "footer", "aside", "header", "iframe", "noscript")

CONTENT_XPATHS = (
    "//article",
    "//main",
    '//*[@role="main"]',
    "//*[contains(concat(' ', normalize-space(@class), ' '), ' content ')]",
    '//*[@id="content"]',
    "//body",
)

BROWSER_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass
class RoutingDecision:
    url: str
    strategy: Strategy
    reason: str
    domain: Optional[str] = None


@dataclass
class FetchResult:
    url: str
    title: str = ""
    description: str = ""
    content: str = ""
    content_length: int = 0
    needs_browser: bool = False
    status_code: Optional[int] = None
    error: Optional[str] = None
    duration_ms: int = 0


def _matches(host: str, domains: tuple[str, ...]) -> Optional[str]:
    for domain in domains:
        if host == domain or host.endswith("." + domain):
            return domain
    return None


def route_url(url: str) -> RoutingDecision:
    """Pick the acquisition strategy for ``url`` from its domain."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        host = ""
    if not host:
        return RoutingDecision(url, "url_fetch", "Invalid URL, defaulting to url_fetch")

    if domain := _matches(host, STATIC_DOMAINS):
        return RoutingDecision(url, "url_fetch", f"{domain} serves static content", domain)
    if domain := _matches(host, BROWSER_DOMAINS):
        return RoutingDecision(
            url, "browser_scrape", f"{domain} is a JavaScript-rendered app", domain
        )
    return RoutingDecision(url, "url_fetch", "No domain rule, trying static fetch first", host)


def should_escalate(content: str, content_length: Optional[int] = None) -> bool:
    """True when fetched content is too thin or asks for JavaScript."""
    length = len(content) if content_length is None else content_length
    if length < MIN_CONTENT_LENGTH:
        return True
    lowered = content.lower()
    return any(marker in lowered for marker in JS_REQUIRED_MARKERS)


def parse_html(url: str, html: str) -> FetchResult:
    """Extract title, description and main text from an HTML document."""
    needs_browser = any(marker in html for marker in SPA_MARKERS) or "<noscript" in html.lower()
    if not html.strip():
        return FetchResult(url=url, needs_browser=True)
    try:
        doc = lxml.html.fromstring(html)
    except (ParserError, ValueError):
        return FetchResult(url=url, needs_browser=True)

    title = " ".join((doc.findtext(".//title") or "").split())
    description = ""
    for xpath in ('//meta[@name="description"]/@content', '//meta[@property="og:description"]/@content'):
        values = doc.xpath(xpath)
        if values:
            description = str(values[0]).strip()
            break

    for element in doc.xpath("|".join(f"//{tag}" for tag in STRIPPED_TAGS)):
        if element.getparent() is not None:
            element.drop_tree()

    content = ""
    for xpath in CONTENT_XPATHS:
        for element in doc.xpath(xpath):
            text = " ".join(element.text_content().split())
            if len(text) > MIN_CONTENT_LENGTH:
                content = text
                break
            content = content or text
        if len(content) > MIN_CONTENT_LENGTH:
            break

    content = content[:CONTENT_LIMIT]
    return FetchResult(
        url=url,
        title=title,
        description=description,
        content=content,
        content_length=len(content),
        needs_browser=needs_browser or len(content) < MIN_CONTENT_LENGTH,
    )


class DomainThrottle:
    """Spaces requests to the same domain at least ``delay`` seconds apart."""

    def __init__(self, delay: float = DOMAIN_DELAY_SECONDS) -> None:
        self.delay = delay
        self._next_slot: dict[str, float] = {}

    async def wait(self, url: str) -> None:
        domain = (urlparse(url).hostname or "").lower()
        now = time.monotonic()
        # Slots in the past no longer delay anything.
        self._next_slot = {d: s for d, s in self._next_slot.items() if s > now}
        slot = max(now, self._next_slot.get(domain, now))
        self._next_slot[domain] = slot + self.delay
        if slot > now:
            await asyncio.sleep(slot - now)


async def url_fetch(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    throttle: Optional[DomainThrottle] = None,
) -> FetchResult:
    """Static HTTP fetch with politeness delay and a bounded timeout.

    Network and HTTP errors are returned in ``FetchResult.error`` with
    ``needs_browser`` set, never raised.
    """
    if throttle is not None:
        await throttle.wait(url)
    start = time.monotonic()
    owns_client = client is None
    client = client or httpx.AsyncClient(
        timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True
    )
    try:
        response = await client.get(url, headers=BROWSER_HEADERS, timeout=FETCH_TIMEOUT_SECONDS)
        response.raise_for_status()
        result = parse_html(url, response.text)
        result.status_code = response.status_code
    except httpx.HTTPError as exc:
        logger.warning(f"url_fetch failed for {url}: {exc}")
        status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
        result = FetchResult(
            url=url,
            needs_browser=True,
            status_code=status,
            error=str(exc) or type(exc).__name__,
        )
    finally:
        if owns_client:
            await client.aclose()
    result.duration_ms = int((time.monotonic() - start) * 1000)
    return result
