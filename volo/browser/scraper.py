"""Page scraping over restored browser sessions."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..constants import CONTENT_LIMIT, NAVIGATION_TIMEOUT_MS, SELECTOR_TIMEOUT_MS
from ..contracts import Platform
from ..errors import BatchLimitError, ChallengeDetectedError
from .session import BrowserSessionManager
from .stealth import AntiDetectionConfig, human_pause, human_scroll

logger = logging.getLogger(__name__)

CHALLENGE_TITLE_MARKERS = ("verify", "challenge", "captcha", "security check")
CHALLENGE_URL_MARKERS = ("/login", "/i/flow/login", "/account/access", "/checkpoint", "/authwall")
CHALLENGE_SELECTOR = (
    'iframe[src*="captcha"], iframe[src*="arkoselabs"], #captcha-internal, '
    '[data-testid="ocfEnterTextTextInput"]'
)

# Strips page chrome and returns the readable text.
EXTRACT_SCRIPT = """
() => {
  for (const tag of ['nav', 'footer', 'aside', 'header', 'script', 'style', 'noscript', 'iframe']) {
    document.querySelectorAll(tag).forEach((el) => el.remove());
  }
  return document.body ? document.body.innerText : '';
}
"""


@dataclass
class ScrapeResult:
    url: str
    title: str
    content: str
    content_length: int
    duration_ms: int


async def detect_challenge(page: Any) -> bool:
    """True when the page is a CAPTCHA, verification wall or login redirect."""
    title = (await page.title() or "").lower()
    if any(marker in title for marker in CHALLENGE_TITLE_MARKERS):
        return True
    path = urlparse(page.url).path.lower()
    if any(path.startswith(marker) for marker in CHALLENGE_URL_MARKERS):
        return True
    return await page.query_selector(CHALLENGE_SELECTOR) is not None


def platform_for_url(url: str) -> Optional[Platform]:
    host = (urlparse(url).hostname or "").lower()
    if host in ("x.com", "twitter.com") or host.endswith((".x.com", ".twitter.com")):
        return Platform.X
    if host == "linkedin.com" or host.endswith(".linkedin.com"):
        return Platform.LINKEDIN
    return None


async def extract_page(
    page: Any,
    url: str,
    selector: Optional[str] = None,
    platform: Optional[Platform] = None,
) -> ScrapeResult:
    """Navigate and read the page text.

    With ``platform`` set, a challenge page raises ``ChallengeDetectedError``
    before anything is read.
    """
    start = time.monotonic()
    await page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
    if selector:
        try:
            await page.wait_for_selector(selector, timeout=SELECTOR_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            logger.debug(f"Selector {selector} not found on {url}")
    else:
        await page.wait_for_timeout(2000)
    if platform is not None and await detect_challenge(page):
        logger.error(f"Challenge detected on {platform.value} at {page.url}")
        raise ChallengeDetectedError(platform.value, page.url)
    title = await page.title() or ""
    text = " ".join((await page.evaluate(EXTRACT_SCRIPT) or "").split())
    content = text[:CONTENT_LIMIT]
    return ScrapeResult(
        url=url,
        title=title,
        content=content,
        content_length=len(content),
        duration_ms=int((time.monotonic() - start) * 1000),
    )


class SessionScraper:
    """Scrapes a batch of pages through one platform session.

    Pages are paced with randomized delays and the batch stops at
    ``batch_limit``. A challenge aborts the batch with
    ``ChallengeDetectedError``; it is never retried.
    """

    def __init__(
        self,
        manager: BrowserSessionManager,
        platform: Platform | str,
        config: Optional[AntiDetectionConfig] = None,
        pages_scraped: int = 0,
    ) -> None:
        self.manager = manager
        self.platform = Platform(platform)
        self.config = config or manager.anti_detection
        self.pages_scraped = pages_scraped
        self._context_cm: Any = None
        self._context: Any = None

    async def __aenter__(self) -> "SessionScraper":
        self._context_cm = self.manager.open(self.platform)
        self._context = await self._context_cm.__aenter__()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._context_cm is not None:
            await self._context_cm.__aexit__(*exc_info)
        self._context_cm = self._context = None

    async def scrape(self, url: str, selector: Optional[str] = None) -> ScrapeResult:
        if self._context is None:
            raise RuntimeError("SessionScraper must be used as an async context manager")
        if self.pages_scraped >= self.config.batch_limit:
            raise BatchLimitError(
                f"Batch limit of {self.config.batch_limit} pages reached for {self.platform.value}"
            )
        if self.pages_scraped:
            await human_pause(self.config)

        page = await self._context.new_page()
        try:
            result = await extract_page(page, url, selector, platform=self.platform)
            await human_scroll(page, self.config, steps=1)
        finally:
            await page.close()
        self.pages_scraped += 1
        return result


async def browser_scrape(
    url: str,
    manager: BrowserSessionManager,
    selector: Optional[str] = None,
    pages_scraped: Optional[dict[Platform, int]] = None,
) -> ScrapeResult:
    """Render ``url`` in a headless browser and return its readable text.

    Social platform URLs go through the stored session when one exists;
    anything else gets a fresh anonymous context. ``pages_scraped`` carries
    the per-platform page count across calls so the batch limit and pacing
    hold for a whole run.
    """
    platform = platform_for_url(url)
    if platform is not None and manager.has_session(platform):
        counts = pages_scraped if pages_scraped is not None else {}
        async with SessionScraper(manager, platform, pages_scraped=counts.get(platform, 0)) as scraper:
            try:
                return await scraper.scrape(url, selector)
            finally:
                counts[platform] = scraper.pages_scraped

    async with manager.create_context() as context:
        page = await context.new_page()
        return await extract_page(page, url, selector)
