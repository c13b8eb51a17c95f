"""Exception types raised across the volo engine."""

from __future__ import annotations

from typing import Optional


class VoloError(Exception):
    """Base class for all volo errors."""


class TaskConfigError(VoloError):
    """Raised when a run's task configuration does not match its workflow type."""


class InvalidTransitionError(VoloError):
    """Raised when a run, step or cursor is moved along an illegal edge."""

    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Invalid {entity} transition: {current} -> {target}")


class RateLimitError(VoloError):
    """Outbound call refused because the endpoint's quota window is exhausted."""

    def __init__(self, endpoint: str, retry_after: int) -> None:
        self.endpoint = endpoint
        self.retry_after = retry_after
        super().__init__(f"Rate limited on {endpoint}. Retry after {retry_after}s")


class PlatformRequestError(VoloError):
    """Non-successful response from a platform API."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(message or f"Platform request failed with status {status_code}")


class AuthenticationError(PlatformRequestError):
    """Credentials were rejected even after a token refresh."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(401, message)


class TierRestrictedError(PlatformRequestError):
    """Endpoint is not available on the account's API tier."""

    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint
        super().__init__(403, f"Endpoint {endpoint} is not available on the current API tier")


class SessionInvalidError(VoloError):
    """The platform identity can no longer be used; an operator must re-authenticate."""

    def __init__(self, platform: str, message: str) -> None:
        self.platform = platform
        super().__init__(message)


class SessionMissingError(SessionInvalidError):
    def __init__(self, platform: str) -> None:
        super().__init__(
            platform,
            f"No browser session for {platform}. Run 'volo session setup {platform}' first.",
        )


class ChallengeDetectedError(SessionInvalidError):
    """A CAPTCHA, verification or login redirect was shown mid-batch."""

    def __init__(self, platform: str, url: Optional[str] = None) -> None:
        self.url = url
        where = f" at {url}" if url else ""
        super().__init__(
            platform,
            f"Challenge detected on {platform}{where}. Re-authenticate before retrying.",
        )


class BatchLimitError(VoloError):
    """The per-session page budget for a scrape batch is used up."""


class SyncInProgressError(VoloError):
    """A sync was started for a cursor that is already syncing."""

    def __init__(self, platform_account_id: str, data_type: str) -> None:
        self.platform_account_id = platform_account_id
        self.data_type = data_type
        super().__init__(
            f"Sync already in progress for {platform_account_id}/{data_type}"
        )


class SessionStoreError(VoloError):
    """Persisted browser session could not be read or decrypted."""


class PersistenceError(VoloError):
    """The store rejected a write in a way the repository cannot recover from."""
