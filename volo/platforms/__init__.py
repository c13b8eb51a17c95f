"""Platform API clients."""

from .client import OAuthToken, PlatformClient, TokenRefresher
from .x import X_API_BASE_URL, XFollowGraphSource, contact_from_x_user

__all__ = [
    "OAuthToken",
    "PlatformClient",
    "TokenRefresher",
    "X_API_BASE_URL",
    "XFollowGraphSource",
    "contact_from_x_user",
]
