"""Contact import from the X API follow graph."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..agents.tools.contacts import enrichment_score
from ..contracts import Platform, SyncDataType
from ..errors import TaskConfigError
from ..persistence import Contact, SyncCursor, VoloRepository
from ..persistence.models import utcnow
from ..sync import SyncPage
from .client import PlatformClient

logger = logging.getLogger(__name__)

X_API_BASE_URL = "https://api.x.com"
USER_FIELDS = "description,location,url,profile_image_url,public_metrics,verified,created_at"
PAGE_SIZE = 100

FOLLOW_GRAPH_TYPES = (SyncDataType.FOLLOWING, SyncDataType.FOLLOWERS)


def contact_from_x_user(user: dict[str, Any]) -> Contact:
    """Map an X API v2 user object to a contact."""
    return Contact(
        name=user.get("name") or user["username"],
        bio=user.get("description") or None,
        location=user.get("location") or None,
        website=user.get("url") or f"https://x.com/{user['username']}",
        platform=Platform.X.value,
    )


class XFollowGraphSource:
    """Pages the authenticated user's following or followers list into contacts.

    ``fetch_page`` and ``process_item`` plug into ``CursorEngine.sync``.
    Existing contacts are matched by name and only gain fields they lack.
    """

    def __init__(
        self,
        client: PlatformClient,
        repository: VoloRepository,
        data_type: SyncDataType | str = SyncDataType.FOLLOWING,
    ) -> None:
        self.data_type = SyncDataType(data_type)
        if self.data_type not in FOLLOW_GRAPH_TYPES:
            raise TaskConfigError(f"X sync supports following and followers, not {self.data_type.value}")
        self.client = client
        self.repository = repository
        self._user_id: Optional[str] = None

    async def user_id(self) -> str:
        if self._user_id is None:
            me = await self.client.get_json("/2/users/me")
            self._user_id = me["data"]["id"]
        return self._user_id

    async def fetch_page(self, cursor: SyncCursor) -> SyncPage:
        params: dict[str, Any] = {"user.fields": USER_FIELDS, "max_results": PAGE_SIZE}
        if cursor.cursor:
            params["pagination_token"] = cursor.cursor
        user_id = await self.user_id()
        body = await self.client.get_json(f"/2/users/{user_id}/{self.data_type.value}", params)
        users = body.get("data") or []
        logger.debug(f"Fetched {len(users)} {self.data_type.value} for X user {user_id}")
        return SyncPage(items=users, next_cursor=(body.get("meta") or {}).get("next_token"))

    async def process_item(self, user: dict[str, Any]) -> str:
        incoming = contact_from_x_user(user)
        found = await self.repository.find_contact(name=incoming.name)
        if found is None:
            incoming.enrichment_score = enrichment_score(incoming)
            await self.repository.save_contact(incoming)
            return "added"

        contact, _ = found
        gaps = {
            field: getattr(incoming, field)
            for field in ("bio", "location", "website")
            if getattr(incoming, field) and not getattr(contact, field)
        }
        if not gaps:
            return "skipped"
        updated = contact.model_copy(update={**gaps, "updated_at": utcnow()})
        updated.enrichment_score = enrichment_score(updated)
        await self.repository.save_contact(updated)
        return "updated"
