import pytest

import volo.persistence as persistence
from volo.ledger import Ledger
from volo.persistence import InMemoryRepository


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    for name in (
        "VOLO_CONFIG",
        "VOLO_DATABASE_URL",
        "DATABASE_URL",
        "VOLO_DATA_DIR",
        "VOLO_SESSION_SECRET",
        "BRAVE_SEARCH_API_KEY",
        "TAVILY_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    persistence._repository_instance = None
    yield
    persistence._repository_instance = None


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def ledger(repo) -> Ledger:
    return Ledger(repo)


class FakePage:
    """Scriptable stand-in for a Playwright page.

    ``routes`` maps a requested URL to the page state after navigation:
    ``{"url": final_url, "title": ..., "text": ..., "selectors": {...}}``.
    """

    def __init__(self, routes=None, user_agent="FakeBrowser/1.0"):
        self.routes = routes or {}
        self.url = "about:blank"
        self._title = ""
        self.text = ""
        self.selectors = set()
        self.user_agent = user_agent
        self.visited = []
        self.clicked = []
        self.wheel_calls = 0
        self.closed = False
        self.mouse = self
        self.keyboard = self

    async def goto(self, url, **kwargs):
        self.visited.append(url)
        state = self.routes.get(url, {})
        self.url = state.get("url", url)
        self._title = state.get("title", "")
        self.text = state.get("text", "")
        self.selectors = set(state.get("selectors", ()))

    async def title(self):
        return self._title

    async def query_selector(self, selector):
        return object() if selector in self.selectors else None

    async def wait_for_selector(self, selector, timeout=None):
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        if selector in self.selectors:
            return object()
        raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    async def wait_for_url(self, pattern, timeout=None):
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        if pattern.match(self.url):
            return None
        raise PlaywrightTimeoutError(f"Timeout waiting for {pattern.pattern}")

    async def wait_for_timeout(self, ms):
        return None

    async def evaluate(self, script):
        if "userAgent" in script:
            return self.user_agent
        return self.text

    async def click(self, selector):
        self.clicked.append(selector)

    async def wheel(self, dx, dy):
        self.wheel_calls += 1

    async def type(self, text, delay=None):
        self.clicked.append(("type", text))

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, browser, options):
        self.browser = browser
        self.options = options
        self.init_scripts = []
        self.added_cookies = []
        self.pages = []

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def add_cookies(self, cookies):
        self.added_cookies.extend(cookies)

    async def cookies(self):
        return [{"name": "auth_token", "value": "abc", "domain": ".x.com", "path": "/"}]

    async def new_page(self):
        page = FakePage(self.browser.playwright.routes)
        self.pages.append(page)
        return page


class FakeBrowser:
    def __init__(self, playwright, headless, args):
        self.playwright = playwright
        self.headless = headless
        self.args = args
        self.contexts = []
        self.closed = False

    async def new_context(self, **options):
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakePlaywright:
    """Async-context-manager factory mimicking ``async_playwright()``."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.browsers = []
        self.chromium = self

    def __call__(self):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def launch(self, headless=True, args=None):
        browser = FakeBrowser(self, headless, args or [])
        self.browsers.append(browser)
        return browser

    @property
    def last_context(self):
        return self.browsers[-1].contexts[-1]

    @property
    def last_page(self):
        return self.last_context.pages[-1]


@pytest.fixture
def fake_playwright():
    return FakePlaywright()


@pytest.fixture
def session_manager(tmp_path, fake_playwright):
    from volo.browser import AntiDetectionConfig, BrowserSessionManager, SessionStore

    return BrowserSessionManager(
        SessionStore(tmp_path / "sessions", "test-secret"),
        playwright_factory=fake_playwright,
        anti_detection=AntiDetectionConfig(min_delay=0, max_delay=0, scroll_min=1, scroll_max=2),
    )


@pytest.fixture
def page_factory():
    """Build a ``FakePage`` already navigated to ``url``."""

    async def make(url, /, **state):
        page = FakePage({url: state})
        await page.goto(url)
        return page

    return make


@pytest.fixture
def x_session():
    from volo.browser import BrowserSession, Viewport

    return BrowserSession(
        platform="x",
        cookies=[{"name": "auth_token", "value": "abc", "domain": ".x.com", "path": "/"}],
        user_agent="Mozilla/5.0 Test",
        viewport=Viewport(width=1440, height=900),
    )
