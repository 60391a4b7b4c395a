"""Interface of the external hierarchical bookmark store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from bookmark_organizer.models.bookmarks import BookmarkNode


@runtime_checkable
class BookmarkStoreProtocol(Protocol):
    """Single-operation primitives of a browser bookmark store.

    Every read reflects the live store at call time. Each primitive may fail
    independently with ``BookmarkStoreError``.
    """

    async def get_tree(self) -> BookmarkNode:
        """Return the full tree rooted at the invisible root node."""
        ...

    async def get_subtree(self, node_id: str) -> BookmarkNode: ...

    async def get_children(self, node_id: str) -> list[BookmarkNode]: ...

    async def create(
        self, parent_id: str, title: str, url: str | None = None, index: int | None = None
    ) -> BookmarkNode:
        """Create a folder (``url is None``) or a bookmark under ``parent_id``."""
        ...

    async def move(
        self, node_id: str, parent_id: str, index: int | None = None
    ) -> BookmarkNode: ...

    async def update(self, node_id: str, *, title: str) -> BookmarkNode: ...

    async def remove(self, node_id: str) -> None:
        """Remove a bookmark or an empty folder."""
        ...

    async def remove_tree(self, node_id: str) -> None:
        """Remove a folder together with everything under it."""
        ...
