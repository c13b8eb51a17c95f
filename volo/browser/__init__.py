"""Browser automation: sessions, scraping and platform actions."""

from .scraper import ScrapeResult, SessionScraper, browser_scrape, detect_challenge
from .session import (
    PLATFORMS,
    BrowserSession,
    BrowserSessionManager,
    SessionStore,
    Viewport,
)
from .stealth import AntiDetectionConfig

__all__ = [
    "PLATFORMS",
    "AntiDetectionConfig",
    "BrowserSession",
    "BrowserSessionManager",
    "ScrapeResult",
    "SessionScraper",
    "SessionStore",
    "Viewport",
    "browser_scrape",
    "detect_challenge",
]
