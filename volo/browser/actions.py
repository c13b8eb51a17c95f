"""Post engagement and publishing through platform sessions."""

from __future__ import annotations

import asyncio
import logging
import random
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..constants import NAVIGATION_TIMEOUT_MS, SELECTOR_TIMEOUT_MS
from ..contracts import Platform
from ..errors import ChallengeDetectedError, VoloError
from .scraper import detect_challenge
from .session import PLATFORMS, BrowserSessionManager

logger = logging.getLogger(__name__)

EngageAction = Literal["like", "reply", "retweet"]

# (trigger, confirm/editor, submit) per action
SELECTORS: dict[Platform, dict[str, tuple[str, ...]]] = {
    Platform.X: {
        "like": ('[data-testid="like"]',),
        "retweet": ('[data-testid="retweet"]', '[data-testid="retweetConfirm"]'),
        "reply": (
            '[data-testid="reply"]',
            '[data-testid="tweetTextarea_0"]',
            '[data-testid="tweetButtonInline"]',
        ),
    },
    Platform.LINKEDIN: {
        "like": ('button.react-button__trigger[aria-label*="Like"]',),
        "retweet": ('button[aria-label*="Repost"]', 'button:has-text("Repost")'),
        "reply": (
            'button[aria-label*="Comment"]',
            '.ql-editor[data-placeholder="Add a comment…"]',
            "button.comments-comment-box__submit-button",
        ),
    },
}

X_COMPOSE_BUTTON = '[data-testid="SideNav_NewTweet_Button"]'
X_ADD_TWEET_BUTTON = '[data-testid="addButton"]'
X_POST_BUTTON = '[data-testid="tweetButton"]'

PublishErrorCode = Literal["session_expired", "timeout", "unknown"]


class PublishError(VoloError):
    def __init__(self, code: PublishErrorCode, message: str) -> None:
        self.code = code
        super().__init__(message)


@dataclass
class EngagementResult:
    success: bool
    action: str
    post_url: str
    error: Optional[str] = None


@dataclass
class PublishResult:
    success: bool
    post_url: Optional[str] = None
    post_ids: list[str] = field(default_factory=list)


async def _pause(low: float = 0.8, high: float = 2.2) -> None:
    await asyncio.sleep(random.uniform(low, high))


async def _type_like_human(page: Any, selector: str, text: str) -> None:
    await page.click(selector)
    await page.keyboard.type(text, delay=random.randint(30, 90))


async def _guard_challenge(page: Any, platform: Platform) -> None:
    if await detect_challenge(page):
        logger.error(f"Challenge detected on {platform.value} at {page.url}")
        raise ChallengeDetectedError(platform.value, page.url)


async def engage_post(
    manager: BrowserSessionManager,
    platform: Platform | str,
    post_url: str,
    action: EngageAction,
    reply_text: Optional[str] = None,
) -> EngagementResult:
    """Like, repost or reply to a post.

    Missing UI elements are reported in the result; a challenge page raises.
    """
    platform = Platform(platform)
    if action == "reply" and not reply_text:
        return EngagementResult(False, action, post_url, error="reply_text is required")
    selectors = SELECTORS[platform][action]

    async with manager.open(platform) as context:
        page = await context.new_page()
        await page.goto(post_url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
        await _guard_challenge(page, platform)
        try:
            await page.wait_for_selector(selectors[0], timeout=SELECTOR_TIMEOUT_MS)
            await _pause()
            await page.click(selectors[0])
            if action == "retweet":
                await page.wait_for_selector(selectors[1], timeout=SELECTOR_TIMEOUT_MS)
                await _pause(0.4, 1.0)
                await page.click(selectors[1])
            elif action == "reply":
                await page.wait_for_selector(selectors[1], timeout=SELECTOR_TIMEOUT_MS)
                await _type_like_human(page, selectors[1], reply_text or "")
                await _pause()
                await page.click(selectors[2])
            await _pause()
        except PlaywrightTimeoutError:
            logger.warning(f"{action} controls not found on {post_url}")
            return EngagementResult(False, action, post_url, error="Element not found")

    logger.info(f"{platform.value} {action} on {post_url}")
    return EngagementResult(True, action, post_url)


async def publish_thread(
    manager: BrowserSessionManager, texts: list[str]
) -> PublishResult:
    """Compose and post a single tweet or a thread on X."""
    if not texts:
        raise PublishError("unknown", "Nothing to publish")
    platform = Platform.X

    async with manager.open(platform) as context:
        page = await context.new_page()
        try:
            await page.goto(
                PLATFORMS[platform].home_url,
                wait_until="domcontentloaded",
                timeout=NAVIGATION_TIMEOUT_MS,
            )
            await _guard_challenge(page, platform)
            try:
                await page.wait_for_selector(X_COMPOSE_BUTTON, timeout=SELECTOR_TIMEOUT_MS)
            except PlaywrightTimeoutError as exc:
                raise PublishError("session_expired", "Compose button not found") from exc

            await page.click(X_COMPOSE_BUTTON)
            for i, text in enumerate(texts):
                if i > 0:
                    await page.click(X_ADD_TWEET_BUTTON)
                    await _pause(0.5, 1.2)
                textarea = f'[data-testid="tweetTextarea_{i}"]'
                await page.wait_for_selector(textarea, timeout=SELECTOR_TIMEOUT_MS)
                await _type_like_human(page, textarea, text)
                await _pause(0.5, 1.5)

            await page.click(X_POST_BUTTON)
            await page.wait_for_timeout(3000)
        except PlaywrightTimeoutError as exc:
            raise PublishError("timeout", str(exc)) from exc

        post_url = await _latest_post_url(page)

    ids = re.findall(r"/status/(\d+)", post_url or "")
    logger.info(f"Published {len(texts)} post(s) to X")
    return PublishResult(success=True, post_url=post_url, post_ids=ids)


async def _latest_post_url(page: Any) -> Optional[str]:
    link = await page.query_selector('a[href*="/status/"]')
    if link is None:
        return None
    href = await link.get_attribute("href")
    return f"https://x.com{href}" if href and href.startswith("/") else href
