from __future__ import annotations

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
MAX_STEPS_DEFAULT = 20

# USD per 1M tokens
COST_RATES: dict[str, dict[str, float]] = {
    "claude-sonnet-4-5-20250929": {"input": 3.0, "output": 15.0},
    "claude-haiku-4-5-20251001": {"input": 0.80, "output": 4.0},
}

THINKING_TEXT_LIMIT = 4000
FINAL_TEXT_LIMIT = 8000
ERROR_TEXT_LIMIT = 2000
CONTENT_LIMIT = 8000

MIN_CONTENT_LENGTH = 100
FETCH_TIMEOUT_SECONDS = 15.0
DOMAIN_DELAY_SECONDS = 1.0
NAVIGATION_TIMEOUT_MS = 30_000
SELECTOR_TIMEOUT_MS = 10_000
LOGIN_TIMEOUT_MS = 300_000

DEFAULT_RETRY_AFTER_SECONDS = 60
TOKEN_REFRESH_WINDOW_SECONDS = 300

SYNC_MAX_PAGES_DEFAULT = 5
SYNC_ERROR_STEP_LIMIT = 10
DEDUPE_NAME_LIMIT = 200

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
