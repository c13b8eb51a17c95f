"""Authenticated HTTP client for platform APIs."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..constants import DEFAULT_RETRY_AFTER_SECONDS, TOKEN_REFRESH_WINDOW_SECONDS
from ..errors import (
    AuthenticationError,
    PlatformRequestError,
    RateLimitError,
    TierRestrictedError,
)
from ..ratelimit import RateLimiter, normalize_endpoint

logger = logging.getLogger(__name__)


@dataclass
class OAuthToken:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None  # unix seconds


TokenRefresher = Callable[[OAuthToken], Awaitable[OAuthToken]]


class PlatformClient:
    """Wraps ``httpx.AsyncClient`` with rate limiting and token refresh.

    Every call is checked against the rate limiter first and feeds the
    response headers back into it. A 401 triggers exactly one token refresh
    and retry; 403 and 429 are raised as typed errors.
    """

    def __init__(
        self,
        account_id: str,
        base_url: str,
        token: OAuthToken,
        *,
        refresher: Optional[TokenRefresher] = None,
        rate_limiter: Optional[RateLimiter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.account_id = account_id
        self.token = token
        self._refresher = refresher
        self.rate_limiter = rate_limiter or RateLimiter(clock=clock)
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._clock = clock

    async def __aenter__(self) -> "PlatformClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _refresh(self) -> None:
        if self._refresher is None:
            raise AuthenticationError("Token expired and no refresher configured")
        logger.info(f"Refreshing access token for account {self.account_id}")
        self.token = await self._refresher(self.token)

    async def _ensure_fresh_token(self) -> None:
        expires_at = self.token.expires_at
        if (
            expires_at is not None
            and self._refresher is not None
            and expires_at - self._clock() < TOKEN_REFRESH_WINDOW_SECONDS
        ):
            await self._refresh()

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        await self._ensure_fresh_token()
        self.rate_limiter.guard(self.account_id, endpoint)

        refreshed = False
        while True:
            response = await self._client.request(
                method,
                endpoint,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {self.token.access_token}"},
            )
            self.rate_limiter.update_from_headers(
                self.account_id, endpoint, response.headers
            )
            if response.status_code == 401 and not refreshed:
                await self._refresh()
                refreshed = True
                continue
            break

        if response.status_code == 401:
            raise AuthenticationError()
        if response.status_code == 403:
            raise TierRestrictedError(normalize_endpoint(endpoint))
        if response.status_code == 429:
            reset = response.headers.get("x-rate-limit-reset")
            retry_after = (
                max(int(reset) - int(self._clock()), 1)
                if reset and reset.isdigit()
                else DEFAULT_RETRY_AFTER_SECONDS
            )
            raise RateLimitError(normalize_endpoint(endpoint), retry_after)
        if response.is_error:
            raise PlatformRequestError(response.status_code, response.text[:200])
        return response

    async def get_json(
        self, endpoint: str, params: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        response = await self.request("GET", endpoint, params=params)
        return response.json()
