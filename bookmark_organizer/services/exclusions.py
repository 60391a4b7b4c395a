"""Resolve the set of folder ids whose bookmarks a run must not touch."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from bookmark_organizer.adapters.bookmarks.protection import is_saved_tabs_folder, normalize_title
from bookmark_organizer.core.glob_utils import matches_any

if TYPE_CHECKING:
    from bookmark_organizer.adapters.bookmarks.bookmark_manager import BookmarkManager
    from bookmark_organizer.config.organization import OrganizationConfig

logger = logging.getLogger(__name__)

TRASH_TITLE = "trash"


class ExclusionResolver:
    """Combines caller ids, configured ids and name patterns into one ignore set.

    The result always includes every folder nested under an excluded folder.
    """

    def __init__(self, manager: BookmarkManager, config: OrganizationConfig) -> None:
        self._manager = manager
        self._config = config

    async def resolve(self, excluded_folder_ids: Iterable[str] = ()) -> set[str]:
        seeds = set(excluded_folder_ids) | set(self._config.excluded_system_folder_ids)
        patterns = self._config.ignore_folders

        for folder in await self._manager.list_all_folders():
            if normalize_title(folder.title) == TRASH_TITLE:
                seeds.add(folder.id)
            elif patterns and matches_any(folder.title, patterns):
                seeds.add(folder.id)
            elif not self._config.organize_saved_tabs and is_saved_tabs_folder(folder.title):
                seeds.add(folder.id)

        ignored = await self._manager.get_folder_descendants(seeds)
        logger.debug(
            "exclusions_resolved",
            extra={"seeds": len(seeds), "ignored_folders": len(ignored)},
        )
        return ignored
