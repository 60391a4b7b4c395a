"""Store adapter: traversal, duplicate detection, folder upkeep and pruning."""

from __future__ import annotations

import logging
import math
from collections.abc import Collection, Iterable, Iterator
from typing import TYPE_CHECKING

from bookmark_organizer.adapters.bookmarks.protection import (
    ROOT_ID,
    is_forbidden_creation_title,
    is_protected_folder,
    normalize_title,
)
from bookmark_organizer.core.async_utils import raise_if_cancelled
from bookmark_organizer.exceptions import BookmarkStoreError
from bookmark_organizer.models.bookmarks import BookmarkItem, BookmarkNode, Folder, FolderSummary
from bookmark_organizer.models.report import (
    DuplicateRemovalResult,
    DuplicateRemoved,
    EmptyFolderRemoved,
    PruneResult,
)

if TYPE_CHECKING:
    from bookmark_organizer.adapters.bookmarks.store_protocol import BookmarkStoreProtocol

logger = logging.getLogger(__name__)

MAX_PRUNE_PASSES = 10


def _walk(node: BookmarkNode) -> Iterator[BookmarkNode]:
    """Pre-order traversal; this is the store's natural order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if current.children:
            stack.extend(reversed(current.children))


class BookmarkManager:
    """Best-effort operations over a ``BookmarkStoreProtocol``.

    Nothing is cached: every read walks the live tree, because the pipeline
    mutates the store between steps. Per-item failures inside bulk operations
    are logged and reported, never raised.
    """

    def __init__(self, store: BookmarkStoreProtocol, *, target_parent_id: str = "1") -> None:
        self._store = store
        self._target_parent_id = target_parent_id

    @property
    def store(self) -> BookmarkStoreProtocol:
        return self._store

    @property
    def target_parent_id(self) -> str:
        return self._target_parent_id

    # -- reads ----------------------------------------------------------------

    async def list_all_items(self) -> list[BookmarkItem]:
        tree = await self._store.get_tree()
        return [BookmarkItem.from_node(node) for node in _walk(tree) if not node.is_folder]

    async def list_all_folders(self) -> list[Folder]:
        tree = await self._store.get_tree()
        return [
            Folder.from_node(node)
            for node in _walk(tree)
            if node.is_folder and node.id != ROOT_ID
        ]

    async def get_folder_titles(self) -> dict[str, str]:
        return {folder.id: folder.title for folder in await self.list_all_folders()}

    async def get_system_folders(self) -> list[Folder]:
        """The permanent folders directly under the invisible root."""
        children = await self._store.get_children(ROOT_ID)
        return [Folder.from_node(node) for node in children if node.is_folder]

    async def get_top_level_folders(self, parent_id: str | None = None) -> list[Folder]:
        children = await self._store.get_children(parent_id or self._target_parent_id)
        return [Folder.from_node(node) for node in children if node.is_folder]

    async def find_folders_by_name(self, name: str) -> list[Folder]:
        wanted = normalize_title(name)
        return [f for f in await self.list_all_folders() if normalize_title(f.title) == wanted]

    async def find_folder_by_name(self, name: str) -> Folder | None:
        matches = await self.find_folders_by_name(name)
        return matches[0] if matches else None

    async def get_folder_descendants(self, folder_ids: Iterable[str]) -> set[str]:
        """Return ``folder_ids`` plus every folder nested beneath them.

        Unknown ids are kept as-is so callers can still filter on them.
        """
        wanted = set(folder_ids)
        result = set(wanted)
        if not wanted:
            return result
        tree = await self._store.get_tree()
        for node in _walk(tree):
            if node.is_folder and node.id in wanted:
                result.update(n.id for n in _walk(node) if n.is_folder)
        return result

    async def get_items_in_folders(self, folder_ids: Iterable[str]) -> list[BookmarkItem]:
        """Bookmarks inside ``folder_ids`` or any folder below them, in tree order."""
        scope = await self.get_folder_descendants(folder_ids)
        return [item for item in await self.list_all_items() if item.parent_id in scope]

    async def get_bookmark_tree_with_counts(self) -> list[FolderSummary]:
        """Folder hierarchy with direct and total bookmark counts."""
        tree = await self._store.get_tree()

        def summarize(node: BookmarkNode) -> FolderSummary:
            children = node.children or ()
            sub = [summarize(child) for child in children if child.is_folder]
            direct = sum(1 for child in children if not child.is_folder)
            return FolderSummary(
                id=node.id,
                title=node.title,
                parent_id=node.parent_id,
                direct_bookmarks=direct,
                total_bookmarks=direct + sum(s.total_bookmarks for s in sub),
                children=sub,
            )

        return [summarize(child) for child in tree.children or () if child.is_folder]

    # -- duplicates -----------------------------------------------------------

    async def find_duplicate_groups(
        self, items: list[BookmarkItem] | None = None
    ) -> dict[str, list[str]]:
        """Group item ids by byte-identical URL; only groups of two or more.

        URLs are compared exactly as stored: ``https://a.com`` and
        ``https://a.com/`` are different bookmarks.
        """
        if items is None:
            items = await self.list_all_items()
        groups: dict[str, list[str]] = {}
        for item in items:
            groups.setdefault(item.url, []).append(item.id)
        return {url: ids for url, ids in groups.items() if len(ids) > 1}

    async def remove_duplicates(
        self, scope_ids: Collection[str] | None = None
    ) -> DuplicateRemovalResult:
        """Delete all but one bookmark per exact-URL group.

        The survivor is the oldest by ``date_added``; ties and missing stamps
        fall back to traversal order. With ``scope_ids`` only those items are
        considered, so a bookmark outside the scope is never deleted.
        """
        items = await self.list_all_items()
        if scope_ids is not None:
            scope = set(scope_ids)
            items = [item for item in items if item.id in scope]

        position = {item.id: pos for pos, item in enumerate(items)}
        by_id = {item.id: item for item in items}
        result = DuplicateRemovalResult()

        for url, ids in (await self.find_duplicate_groups(items)).items():
            ordered = sorted(
                ids,
                key=lambda item_id: (
                    by_id[item_id].date_added
                    if by_id[item_id].date_added is not None
                    else math.inf,
                    position[item_id],
                ),
            )
            keeper, *extras = ordered
            for item_id in extras:
                try:
                    await self._store.remove(item_id)
                except Exception as exc:  # noqa: BLE001
                    raise_if_cancelled(exc)
                    logger.warning(
                        "duplicate_remove_failed",
                        extra={"item_id": item_id, "url": url, "error": str(exc)},
                    )
                    result.errors.append(f"Failed to remove duplicate {item_id} ({url}): {exc}")
                    continue
                item = by_id[item_id]
                result.removed.append(
                    DuplicateRemoved(
                        item_id=item_id, title=item.title, url=item.url, kept_item_id=keeper
                    )
                )

        logger.info(
            "duplicates_removed",
            extra={"removed": result.removed_count, "errors": len(result.errors)},
        )
        return result

    # -- folders --------------------------------------------------------------

    async def find_or_create_folder(
        self, title: str, parent_id: str | None = None
    ) -> tuple[str, bool]:
        """Return ``(folder_id, created)`` for ``title`` directly under ``parent_id``.

        Only direct children of the parent are matched; a folder with the same
        name elsewhere in the tree does not count.
        """
        parent_id = parent_id or self._target_parent_id
        if is_forbidden_creation_title(title):
            msg = f"Refusing to create folder with reserved name '{title}'"
            raise BookmarkStoreError(msg, node_id=parent_id)

        wanted = normalize_title(title)
        for child in await self._store.get_children(parent_id):
            if child.is_folder and normalize_title(child.title) == wanted:
                return child.id, False

        created = await self._store.create(parent_id, title.strip())
        logger.info(
            "folder_created",
            extra={"folder_id": created.id, "title": created.title, "parent_id": parent_id},
        )
        return created.id, True

    async def ensure_folder(self, title: str, parent_id: str | None = None) -> str:
        folder_id, _ = await self.find_or_create_folder(title, parent_id)
        return folder_id

    async def move_item(self, item_id: str, dest_folder_id: str) -> None:
        await self._store.move(item_id, dest_folder_id)

    async def rename_folder(self, folder_id: str, new_title: str) -> Folder:
        if is_forbidden_creation_title(new_title):
            msg = f"Refusing to rename folder to reserved name '{new_title}'"
            raise BookmarkStoreError(msg, node_id=folder_id)
        node = await self._store.update(folder_id, title=new_title)
        logger.info("folder_renamed", extra={"folder_id": folder_id, "title": new_title})
        return Folder.from_node(node)

    # -- pruning --------------------------------------------------------------

    async def find_empty_folders(
        self, exclusions: Collection[str] = (), *, allow_saved_tabs: bool = False
    ) -> list[Folder]:
        excluded = set(exclusions)
        return [
            folder
            for folder in await self.list_all_folders()
            if folder.child_count == 0
            and folder.id not in excluded
            and not is_protected_folder(folder, allow_saved_tabs=allow_saved_tabs)
        ]

    async def prune_empty_folders(
        self,
        exclusions: Collection[str] = (),
        *,
        allow_saved_tabs: bool = False,
        max_passes: int = MAX_PRUNE_PASSES,
    ) -> PruneResult:
        """Remove empty folders until a pass removes nothing or ``max_passes`` is hit.

        Removing a child can empty its parent, hence the repeated passes.
        """
        result = PruneResult()
        failed: set[str] = set()

        for _ in range(max_passes):
            result.passes += 1
            candidates = [
                folder
                for folder in await self.find_empty_folders(
                    exclusions, allow_saved_tabs=allow_saved_tabs
                )
                if folder.id not in failed
            ]
            removed_this_pass = 0
            for folder in candidates:
                if await self._remove_folder(folder, result):
                    removed_this_pass += 1
                else:
                    failed.add(folder.id)
            if removed_this_pass == 0:
                break

        logger.info(
            "empty_folders_pruned",
            extra={
                "removed": result.removed_count,
                "passes": result.passes,
                "errors": len(result.errors),
            },
        )
        return result

    async def _remove_folder(self, folder: Folder, result: PruneResult) -> bool:
        try:
            await self._store.remove(folder.id)
        except Exception as exc:  # noqa: BLE001
            raise_if_cancelled(exc)
            logger.warning(
                "empty_folder_remove_failed",
                extra={"folder_id": folder.id, "title": folder.title, "error": str(exc)},
            )
            try:
                await self._store.remove_tree(folder.id)
            except Exception as tree_exc:  # noqa: BLE001
                raise_if_cancelled(tree_exc)
                logger.warning(
                    "empty_folder_remove_tree_failed",
                    extra={"folder_id": folder.id, "title": folder.title, "error": str(tree_exc)},
                )
                result.errors.append(
                    f"Failed to remove empty folder '{folder.title}' ({folder.id}): {tree_exc}"
                )
                return False
        result.removed.append(EmptyFolderRemoved(folder_id=folder.id, title=folder.title))
        return True
