"""Remembers which bookmarks the organizer has already placed."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bookmark_organizer.adapters.bookmarks.bookmark_manager import BookmarkManager
    from bookmark_organizer.protocols import HistoryRepository

logger = logging.getLogger(__name__)


class HistoryTracker:
    def __init__(self, repository: HistoryRepository) -> None:
        self._repository = repository

    async def is_moved(self, bookmark_id: str) -> bool:
        return await self._repository.async_is_moved(bookmark_id)

    async def moved_ids(self) -> set[str]:
        return await self._repository.async_get_moved_ids()

    async def mark_moved(self, bookmark_id: str, category: str | None = None) -> None:
        await self._repository.async_mark_moved(bookmark_id, category)

    async def clear(self) -> int:
        removed = await self._repository.async_clear()
        logger.info("history_cleared", extra={"removed": removed})
        return removed

    async def mark_all_as_organized_without_moving(self, manager: BookmarkManager) -> int:
        """Baseline the history: every current bookmark counts as organized."""
        items = await manager.list_all_items()
        count = await self._repository.async_mark_many(item.id for item in items)
        logger.info("history_baselined", extra={"count": count})
        return count
