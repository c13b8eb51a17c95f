"""Persisted, encrypted browser identities per platform."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional

from playwright.async_api import BrowserContext
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright
from pydantic import BaseModel, Field, ValidationError

from .. import crypto
from ..config import BrowserConfig
from ..constants import BROWSER_USER_AGENT, LOGIN_TIMEOUT_MS, NAVIGATION_TIMEOUT_MS, SELECTOR_TIMEOUT_MS
from ..contracts import Platform
from ..errors import SessionInvalidError, SessionMissingError, SessionStoreError
from ..persistence.models import utcnow
from .stealth import LAUNCH_ARGS, STEALTH_SCRIPT, AntiDetectionConfig, random_viewport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformProfile:
    login_url: str
    home_url: str
    logged_in_selector: str
    logged_out_selector: str
    home_url_pattern: re.Pattern


PLATFORMS: dict[Platform, PlatformProfile] = {
    Platform.X: PlatformProfile(
        login_url="https://x.com/login",
        home_url="https://x.com/home",
        logged_in_selector='[data-testid="primaryColumn"]',
        logged_out_selector='[data-testid="loginButton"]',
        home_url_pattern=re.compile(r"https://(x|twitter)\.com/home"),
    ),
    Platform.LINKEDIN: PlatformProfile(
        login_url="https://www.linkedin.com/login",
        home_url="https://www.linkedin.com/feed/",
        logged_in_selector=".feed-identity-module",
        logged_out_selector=".sign-in-form",
        home_url_pattern=re.compile(r"https://www\.linkedin\.com/feed"),
    ),
}


class Viewport(BaseModel):
    width: int
    height: int


class BrowserSession(BaseModel):
    """Captured authenticated identity for one platform."""

    platform: Platform
    cookies: list[dict[str, Any]] = Field(default_factory=list)
    user_agent: str
    viewport: Viewport
    created_at: datetime = Field(default_factory=utcnow)
    last_validated_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None


class SessionStore:
    """Reads and writes sessions as encrypted files, one per platform."""

    def __init__(self, sessions_dir: str | Path, secret: Optional[str] = None) -> None:
        self.sessions_dir = Path(sessions_dir).expanduser()
        self._secret = secret

    def path(self, platform: Platform | str) -> Path:
        return self.sessions_dir / f"{Platform(platform).value}-browser.json.enc"

    def exists(self, platform: Platform | str) -> bool:
        return self.path(platform).exists()

    def save(self, session: BrowserSession) -> Path:
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        path = self.path(session.platform)
        path.write_bytes(crypto.encrypt(session.model_dump_json(), self._secret))
        os.chmod(path, 0o600)
        return path

    def load(self, platform: Platform | str) -> BrowserSession | None:
        path = self.path(platform)
        if not path.exists():
            return None
        raw = crypto.decrypt(path.read_bytes(), self._secret)
        try:
            return BrowserSession.model_validate_json(raw)
        except ValidationError as exc:
            raise SessionStoreError(f"Corrupt session file {path}") from exc

    def delete(self, platform: Platform | str) -> bool:
        path = self.path(platform)
        if not path.exists():
            return False
        path.unlink()
        return True


class BrowserSessionManager:
    """Creates, validates and restores platform sessions.

    One session per platform; automation against a platform serializes
    through ``platform_lock`` since contexts are not multiplexed.
    """

    def __init__(
        self,
        store: SessionStore,
        playwright_factory: Callable[[], Any] = async_playwright,
        anti_detection: Optional[AntiDetectionConfig] = None,
    ) -> None:
        self.store = store
        self.anti_detection = anti_detection or AntiDetectionConfig()
        self._playwright_factory = playwright_factory
        self._locks: dict[Platform, asyncio.Lock] = {}

    @classmethod
    def from_config(cls, config: BrowserConfig) -> "BrowserSessionManager":
        return cls(
            SessionStore(config.sessions_dir, config.session_secret),
            anti_detection=AntiDetectionConfig(
                min_delay=config.min_delay_seconds,
                max_delay=config.max_delay_seconds,
                batch_limit=config.batch_limit,
            ),
        )

    def platform_lock(self, platform: Platform | str) -> asyncio.Lock:
        return self._locks.setdefault(Platform(platform), asyncio.Lock())

    def has_session(self, platform: Platform | str) -> bool:
        return self.store.exists(platform)

    def load(self, platform: Platform | str) -> BrowserSession | None:
        return self.store.load(platform)

    def delete(self, platform: Platform | str) -> bool:
        deleted = self.store.delete(platform)
        if deleted:
            logger.info(f"Deleted browser session for {Platform(platform).value}")
        return deleted

    # ------------------------------------------------------------------
    async def setup(
        self, platform: Platform | str, timeout_ms: int = LOGIN_TIMEOUT_MS
    ) -> BrowserSession:
        """Open a visible browser and wait for a human to finish logging in."""
        platform = Platform(platform)
        profile = PLATFORMS[platform]
        viewport = random_viewport()

        async with self._playwright_factory() as pw:
            browser = await pw.chromium.launch(headless=False, args=LAUNCH_ARGS)
            try:
                context = await browser.new_context(viewport=viewport)
                await context.add_init_script(STEALTH_SCRIPT)
                page = await context.new_page()
                await page.goto(profile.login_url, wait_until="domcontentloaded")
                logger.info(f"Waiting up to {timeout_ms // 1000}s for {platform.value} login")
                await self._wait_for_login(page, platform, timeout_ms)

                cookies = await context.cookies()
                user_agent = await page.evaluate("() => navigator.userAgent")
            finally:
                await browser.close()

        session = BrowserSession(
            platform=platform,
            cookies=[dict(c) for c in cookies],
            user_agent=user_agent,
            viewport=Viewport(**viewport),
        )
        self.store.save(session)
        logger.info(f"Saved {platform.value} session with {len(session.cookies)} cookies")
        return session

    async def _wait_for_login(
        self, page: Any, platform: Platform, timeout_ms: int
    ) -> None:
        profile = PLATFORMS[platform]
        waiters = [
            asyncio.ensure_future(
                page.wait_for_selector(profile.logged_in_selector, timeout=timeout_ms)
            ),
            asyncio.ensure_future(
                page.wait_for_url(profile.home_url_pattern, timeout=timeout_ms)
            ),
        ]
        try:
            pending = set(waiters)
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                if any(not task.exception() for task in done):
                    return
        finally:
            for task in waiters:
                task.cancel()
        raise SessionInvalidError(
            platform.value,
            f"Login was not completed within {timeout_ms // 1000}s",
        )

    async def validate(self, platform: Platform | str) -> bool:
        """Headless check that the stored session still reaches the logged-in home page."""
        platform = Platform(platform)
        session = self.store.load(platform)
        if session is None:
            return False
        profile = PLATFORMS[platform]

        async with self.platform_lock(platform):
            async with self.create_context(session) as context:
                page = await context.new_page()
                try:
                    await page.goto(
                        profile.home_url,
                        wait_until="domcontentloaded",
                        timeout=NAVIGATION_TIMEOUT_MS,
                    )
                    await page.wait_for_selector(
                        profile.logged_in_selector, timeout=SELECTOR_TIMEOUT_MS
                    )
                except PlaywrightTimeoutError:
                    logger.warning(f"{platform.value} session failed validation")
                    return False

        session.last_validated_at = utcnow()
        self.store.save(session)
        return True

    @asynccontextmanager
    async def create_context(
        self, session: Optional[BrowserSession] = None, headless: bool = True
    ) -> AsyncIterator[BrowserContext]:
        """Fresh automation context, seeded with the session's cookies when given."""
        viewport = session.viewport.model_dump() if session else random_viewport()
        user_agent = session.user_agent if session else BROWSER_USER_AGENT
        async with self._playwright_factory() as pw:
            browser = await pw.chromium.launch(headless=headless, args=LAUNCH_ARGS)
            try:
                context = await browser.new_context(
                    viewport=viewport, user_agent=user_agent
                )
                await context.add_init_script(STEALTH_SCRIPT)
                if session and session.cookies:
                    await context.add_cookies(session.cookies)
                yield context
            finally:
                await browser.close()

    @asynccontextmanager
    async def open(self, platform: Platform | str) -> AsyncIterator[BrowserContext]:
        """Lock the platform and yield a context for its stored session."""
        platform = Platform(platform)
        session = self.store.load(platform)
        if session is None:
            raise SessionMissingError(platform.value)
        async with self.platform_lock(platform):
            async with self.create_context(session) as context:
                yield context
