"""Resumable pagination state for platform imports."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from ..constants import SYNC_MAX_PAGES_DEFAULT
from ..contracts import SyncStatus
from ..errors import RateLimitError, SessionInvalidError, SyncInProgressError
from ..persistence import SyncCursor, VoloRepository, get_repository
from ..persistence.models import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SyncPage:
    """One page returned by a platform fetcher."""

    items: list[Any]
    next_cursor: Optional[str] = None
    newest_at: Optional[datetime] = None
    oldest_at: Optional[datetime] = None


@dataclass
class SyncResult:
    added: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    pages: int = 0
    exhausted: bool = False

    @property
    def success(self) -> int:
        return self.added + self.updated

    def as_dict(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": len(self.errors),
            "pages": self.pages,
            "exhausted": self.exhausted,
        }


# Receives the live cursor (pagination token and watermarks) and returns the next page.
FetchPage = Callable[[SyncCursor], Awaitable[SyncPage]]
# Persists one item and reports "added", "updated" or "skipped".
ProcessItem = Callable[[Any], Awaitable[str]]


class CursorEngine:
    """Owns the ``idle -> syncing -> completed|failed`` cycle of sync cursors.

    The ``syncing`` status is an advisory guard only: two processes racing on
    the same cursor can both pass it. Within one process, syncs of the same
    (account, data type) are serialized by a lock.
    """

    def __init__(
        self,
        repository: VoloRepository | None = None,
        stale_after: timedelta = timedelta(hours=1),
    ) -> None:
        self.repository = repository or get_repository()
        self.stale_after = stale_after
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    async def get_or_create(self, platform_account_id: str, data_type: str) -> SyncCursor:
        cursor = await self.repository.get_cursor(platform_account_id, data_type)
        if cursor is not None:
            return cursor
        return await self.repository.insert_cursor(
            SyncCursor(platform_account_id=platform_account_id, data_type=data_type)
        )

    async def update(self, record: SyncCursor, /, **changes: Any) -> SyncCursor:
        updated = SyncCursor.model_validate(
            {**record.model_dump(), **changes, "updated_at": utcnow()}
        )
        await self.repository.save_cursor(updated)
        return updated

    async def list_cursors(self, platform_account_id: str) -> list[SyncCursor]:
        return await self.repository.list_cursors(platform_account_id)

    def _is_stale(self, cursor: SyncCursor) -> bool:
        started = cursor.last_sync_started_at
        return started is None or utcnow() - started > self.stale_after

    async def begin(self, cursor: SyncCursor, force: bool = False) -> SyncCursor:
        """Mark a cursor as syncing.

        A cursor left ``syncing`` by a crashed process is taken over once it is
        older than ``stale_after``, or immediately with ``force``.
        """
        if cursor.sync_status == SyncStatus.SYNCING and not force:
            if not self._is_stale(cursor):
                raise SyncInProgressError(cursor.platform_account_id, cursor.data_type)
            logger.warning(
                f"Taking over stale sync for {cursor.platform_account_id}/{cursor.data_type}"
            )
        return await self.update(
            cursor,
            sync_status=SyncStatus.SYNCING,
            last_sync_started_at=utcnow(),
            last_error=None,
        )

    async def finish(
        self, cursor: SyncCursor, succeeded: bool, error: Optional[str] = None
    ) -> SyncCursor:
        """End a sync attempt; the completion timestamp is set either way."""
        return await self.update(
            cursor,
            sync_status=SyncStatus.COMPLETED if succeeded else SyncStatus.FAILED,
            last_sync_completed_at=utcnow(),
            last_error=error,
        )

    async def sync(
        self,
        platform_account_id: str,
        data_type: str,
        fetch_page: FetchPage,
        process_item: ProcessItem,
        max_pages: int = SYNC_MAX_PAGES_DEFAULT,
        force: bool = False,
    ) -> SyncResult:
        """Fetch up to ``max_pages`` pages, resuming from the stored cursor.

        The cursor is persisted after every page so an interrupted sync picks
        up where it stopped. Rate-limit and session errors are re-raised after
        the cursor is closed out; other failures end up in ``SyncResult.errors``.
        """
        key = (platform_account_id, data_type)
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            raise SyncInProgressError(platform_account_id, data_type)

        try:
            async with lock:
                return await self._sync(
                    platform_account_id, data_type, fetch_page, process_item, max_pages, force
                )
        finally:
            # Concurrent callers are rejected, never queued on the lock.
            self._locks.pop(key, None)

    async def _sync(
        self,
        platform_account_id: str,
        data_type: str,
        fetch_page: FetchPage,
        process_item: ProcessItem,
        max_pages: int,
        force: bool,
    ) -> SyncResult:
        cursor = await self.get_or_create(platform_account_id, data_type)
        cursor = await self.begin(cursor, force=force)
        result = SyncResult()
        logger.info(
            f"Sync {platform_account_id}/{data_type} starting at cursor {cursor.cursor!r}"
        )
        try:
            for _ in range(max_pages):
                page = await fetch_page(cursor)
                page_success = 0
                for item in page.items:
                    try:
                        outcome = await process_item(item)
                    except (RateLimitError, SessionInvalidError):
                        raise
                    except Exception as exc:
                        logger.warning(f"Sync item failed: {exc}")
                        result.errors.append(str(exc))
                        continue
                    if outcome == "added":
                        result.added += 1
                        page_success += 1
                    elif outcome == "updated":
                        result.updated += 1
                        page_success += 1
                    else:
                        result.skipped += 1
                result.pages += 1
                cursor = await self.update(
                    cursor,
                    cursor=page.next_cursor,
                    total_items_synced=cursor.total_items_synced + page_success,
                    newest_fetched_at=_latest(cursor.newest_fetched_at, page.newest_at),
                    oldest_fetched_at=_earliest(cursor.oldest_fetched_at, page.oldest_at),
                    sync_progress=result.as_dict(),
                )
                if not page.next_cursor:
                    result.exhausted = True
                    break
        except asyncio.CancelledError:
            logger.warning(f"Sync {platform_account_id}/{data_type} cancelled")
            await self.finish(cursor, succeeded=False, error="cancelled")
            raise
        except Exception as exc:
            logger.error(f"Sync {platform_account_id}/{data_type} failed: {exc}")
            await self.finish(cursor, succeeded=result.added > 0, error=str(exc))
            if isinstance(exc, (RateLimitError, SessionInvalidError)):
                raise
            result.errors.append(str(exc))
            return result

        await self.finish(cursor, succeeded=True)
        logger.info(
            f"Sync {platform_account_id}/{data_type} done: {result.as_dict()}"
        )
        return result


def _latest(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None or b is None:
        return a or b
    return max(a, b)


def _earliest(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None or b is None:
        return a or b
    return min(a, b)
