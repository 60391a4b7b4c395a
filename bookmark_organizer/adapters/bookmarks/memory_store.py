"""In-process bookmark store with Chromium's fixed root layout."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field, replace
from typing import Any

from bookmark_organizer.adapters.bookmarks.protection import (
    BOOKMARKS_BAR_ID,
    MOBILE_BOOKMARKS_ID,
    OTHER_BOOKMARKS_ID,
    ROOT_ID,
)
from bookmark_organizer.core.time_utils import now_ms
from bookmark_organizer.exceptions import BookmarkStoreError
from bookmark_organizer.models.bookmarks import BookmarkNode

logger = logging.getLogger(__name__)

DEFAULT_ROOTS: tuple[tuple[str, str], ...] = (
    (BOOKMARKS_BAR_ID, "Bookmarks bar"),
    (OTHER_BOOKMARKS_ID, "Other bookmarks"),
    (MOBILE_BOOKMARKS_ID, "Mobile bookmarks"),
)


@dataclass
class _Record:
    id: str
    title: str
    url: str | None
    parent_id: str | None
    date_added: int | None
    children: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_folder(self) -> bool:
        return self.url is None


class InMemoryBookmarkStore:
    """Reference ``BookmarkStoreProtocol`` implementation.

    Node ``"0"`` is the invisible root; its children are the permanent
    folders, which can be neither modified nor removed.
    """

    def __init__(self, roots: tuple[tuple[str, str], ...] = DEFAULT_ROOTS) -> None:
        self._records: dict[str, _Record] = {
            ROOT_ID: _Record(id=ROOT_ID, title="", url=None, parent_id=None, date_added=None)
        }
        self._permanent: set[str] = {ROOT_ID}
        for root_id, title in roots:
            record = _Record(
                id=root_id, title=title, url=None, parent_id=ROOT_ID, date_added=None
            )
            self._insert(record, ROOT_ID, None)
            self._permanent.add(root_id)
        self._reset_ids()

    # -- synchronous builders -------------------------------------------------

    def add_folder(
        self,
        parent_id: str,
        title: str,
        *,
        date_added: int | None = None,
        node_id: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> str:
        return self._add(parent_id, title, None, date_added, node_id, extra)

    def add_bookmark(
        self,
        parent_id: str,
        title: str,
        url: str,
        *,
        date_added: int | None = None,
        node_id: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> str:
        return self._add(parent_id, title, url, date_added, node_id, extra)

    def _add(
        self,
        parent_id: str,
        title: str,
        url: str | None,
        date_added: int | None,
        node_id: str | None,
        extra: dict[str, Any] | None,
    ) -> str:
        parent = self._folder(parent_id)
        new_id = node_id or self._next_id()
        if new_id in self._records:
            msg = f"Duplicate bookmark id {new_id}"
            raise BookmarkStoreError(msg, node_id=new_id)
        record = _Record(
            id=new_id,
            title=title,
            url=url,
            parent_id=parent.id,
            date_added=now_ms() if date_added is None else date_added,
            extra=dict(extra or {}),
        )
        self._insert(record, parent.id, None)
        if node_id is not None:
            self._reset_ids()
        return new_id

    def __len__(self) -> int:
        return len(self._records) - 1

    # -- BookmarkStoreProtocol ------------------------------------------------

    async def get_tree(self) -> BookmarkNode:
        return self._snapshot(self._records[ROOT_ID], None)

    async def get_subtree(self, node_id: str) -> BookmarkNode:
        record = self._record(node_id)
        return self._snapshot(record, self._index_of(record))

    async def get_children(self, node_id: str) -> list[BookmarkNode]:
        folder = self._folder(node_id)
        return [
            self._snapshot(self._records[child_id], index)
            for index, child_id in enumerate(folder.children)
        ]

    async def create(
        self, parent_id: str, title: str, url: str | None = None, index: int | None = None
    ) -> BookmarkNode:
        parent = self._folder(parent_id)
        if parent.id == ROOT_ID:
            msg = "Cannot create nodes directly under the root"
            raise BookmarkStoreError(msg, node_id=parent.id)
        checkpoint = self._checkpoint()
        record = _Record(
            id=self._next_id(),
            title=title,
            url=url,
            parent_id=parent.id,
            date_added=now_ms(),
        )
        self._insert(record, parent.id, index)
        self._commit(checkpoint)
        return self._snapshot(record, self._index_of(record))

    async def move(self, node_id: str, parent_id: str, index: int | None = None) -> BookmarkNode:
        record = self._mutable(node_id)
        parent = self._folder(parent_id)
        if parent.id == ROOT_ID:
            msg = "Cannot move nodes directly under the root"
            raise BookmarkStoreError(msg, node_id=node_id)
        ancestor: str | None = parent.id
        while ancestor is not None:
            if ancestor == record.id:
                msg = f"Cannot move folder {node_id} into its own subtree"
                raise BookmarkStoreError(msg, node_id=node_id)
            ancestor = self._records[ancestor].parent_id

        checkpoint = self._checkpoint()
        self._detach(record)
        self._insert(record, parent.id, index)
        self._commit(checkpoint)
        return self._snapshot(record, self._index_of(record))

    async def update(self, node_id: str, *, title: str) -> BookmarkNode:
        record = self._mutable(node_id)
        checkpoint = self._checkpoint()
        record.title = title
        self._commit(checkpoint)
        return self._snapshot(record, self._index_of(record))

    async def remove(self, node_id: str) -> None:
        record = self._mutable(node_id)
        if record.is_folder and record.children:
            msg = f"Folder {node_id} is not empty"
            raise BookmarkStoreError(msg, node_id=node_id)
        checkpoint = self._checkpoint()
        self._detach(record)
        del self._records[record.id]
        self._commit(checkpoint)

    async def remove_tree(self, node_id: str) -> None:
        record = self._mutable(node_id)
        checkpoint = self._checkpoint()
        self._detach(record)
        stack = [record.id]
        while stack:
            current = self._records.pop(stack.pop())
            stack.extend(current.children)
        self._commit(checkpoint)

    # -- internals ------------------------------------------------------------

    def _on_mutated(self) -> None:
        """Hook for persistent subclasses."""

    def _checkpoint(self) -> dict[str, _Record]:
        return {
            rid: replace(record, children=list(record.children), extra=dict(record.extra))
            for rid, record in self._records.items()
        }

    def _commit(self, checkpoint: dict[str, _Record]) -> None:
        """Run the mutation hook; if it fails, restore the tree to ``checkpoint``."""
        try:
            self._on_mutated()
        except Exception:
            self._records = checkpoint
            logger.warning("bookmark_store_mutation_rolled_back")
            raise

    def _reset_ids(self) -> None:
        # Ids up to 4 belong to browser system folders.
        self._ids = itertools.count(max(self._max_numeric_id(), 4) + 1)

    def _next_id(self) -> str:
        candidate = str(next(self._ids))
        while candidate in self._records:
            candidate = str(next(self._ids))
        return candidate

    def _max_numeric_id(self) -> int:
        return max((int(rid) for rid in self._records if rid.isdigit()), default=0)

    def _record(self, node_id: str) -> _Record:
        record = self._records.get(node_id)
        if record is None:
            msg = f"Bookmark node {node_id} not found"
            raise BookmarkStoreError(msg, node_id=node_id)
        return record

    def _folder(self, node_id: str) -> _Record:
        record = self._record(node_id)
        if not record.is_folder:
            msg = f"Node {node_id} is not a folder"
            raise BookmarkStoreError(msg, node_id=node_id)
        return record

    def _mutable(self, node_id: str) -> _Record:
        if node_id in self._permanent:
            msg = f"Can't modify the root bookmark folders ({node_id})"
            raise BookmarkStoreError(msg, node_id=node_id)
        return self._record(node_id)

    def _insert(self, record: _Record, parent_id: str, index: int | None) -> None:
        self._records[record.id] = record
        siblings = self._records[parent_id].children
        record.parent_id = parent_id
        if index is None or index < 0 or index > len(siblings):
            siblings.append(record.id)
        else:
            siblings.insert(index, record.id)

    def _detach(self, record: _Record) -> None:
        if record.parent_id is not None:
            self._records[record.parent_id].children.remove(record.id)

    def _index_of(self, record: _Record) -> int | None:
        if record.parent_id is None:
            return None
        return self._records[record.parent_id].children.index(record.id)

    def _snapshot(self, record: _Record, index: int | None) -> BookmarkNode:
        children: tuple[BookmarkNode, ...] | None = None
        if record.is_folder:
            children = tuple(
                self._snapshot(self._records[child_id], position)
                for position, child_id in enumerate(record.children)
            )
        return BookmarkNode(
            id=record.id,
            title=record.title,
            url=record.url,
            parent_id=record.parent_id,
            index=index,
            date_added=record.date_added,
            children=children,
        )
