"""Per-account, per-endpoint rate limit tracking driven by platform headers."""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from .errors import RateLimitError

logger = logging.getLogger(__name__)

_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")


def normalize_endpoint(endpoint: str) -> str:
    """Collapse numeric path segments so quota is tracked per logical endpoint.

    ``/2/users/123/followers?max_results=10`` becomes ``/2/users/:id/followers``.
    """
    path = endpoint.split("?", 1)[0]
    return _NUMERIC_SEGMENT.sub("/:id", path)


@dataclass
class RateLimitInfo:
    limit: int
    remaining: int
    resets_at: int  # unix seconds


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after: Optional[int] = None


class RateLimiter:
    """In-process quota tracker.

    State is derived from the platform's own headers, so it can always be
    rebuilt; reads and writes share one lock.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._state: dict[tuple[str, str], RateLimitInfo] = {}
        self._lock = threading.Lock()

    def check(self, account_id: str, endpoint: str) -> RateLimitDecision:
        key = (account_id, normalize_endpoint(endpoint))
        now = int(self._clock())
        with self._lock:
            info = self._state.get(key)
            if info is None or now >= info.resets_at:
                return RateLimitDecision(allowed=True)
            if info.remaining <= 0:
                return RateLimitDecision(
                    allowed=False, retry_after=max(info.resets_at - now, 1)
                )
            # Count the call locally until the next response refreshes the state.
            info.remaining -= 1
            return RateLimitDecision(allowed=True)

    def guard(self, account_id: str, endpoint: str) -> None:
        """Raise ``RateLimitError`` when the endpoint's window is exhausted."""
        decision = self.check(account_id, endpoint)
        if not decision.allowed:
            pattern = normalize_endpoint(endpoint)
            logger.warning(
                f"Rate limit hit for {account_id} on {pattern}, retry in {decision.retry_after}s"
            )
            raise RateLimitError(pattern, decision.retry_after or 0)

    def update_from_headers(
        self, account_id: str, endpoint: str, headers: Mapping[str, str]
    ) -> None:
        lowered = {k.lower(): v for k, v in headers.items()}
        try:
            limit = int(lowered["x-rate-limit-limit"])
            remaining = int(lowered["x-rate-limit-remaining"])
            resets_at = int(lowered["x-rate-limit-reset"])
        except (KeyError, ValueError):
            return
        with self._lock:
            self._state[(account_id, normalize_endpoint(endpoint))] = RateLimitInfo(
                limit=limit, remaining=remaining, resets_at=resets_at
            )

    def get(self, account_id: str, endpoint: str) -> RateLimitInfo | None:
        with self._lock:
            return self._state.get((account_id, normalize_endpoint(endpoint)))

    def reset(self) -> None:
        with self._lock:
            self._state.clear()
