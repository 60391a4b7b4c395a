"""Bookmark tree data models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class BookmarkNode(BaseModel):
    """A node of the bookmark tree as returned by a store.

    Bookmarks carry a ``url``; folders have ``url is None`` and a ``children``
    tuple (possibly empty).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    url: str | None = None
    parent_id: str | None = None
    index: int | None = None
    date_added: int | None = Field(default=None, description="Epoch milliseconds.")
    children: tuple[BookmarkNode, ...] | None = None

    @property
    def is_folder(self) -> bool:
        return self.url is None


class BookmarkItem(BaseModel):
    """A bookmark with a URL, flattened out of the tree."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    url: str
    parent_id: str | None = None
    date_added: int | None = None
    index: int | None = None

    @classmethod
    def from_node(cls, node: BookmarkNode) -> BookmarkItem:
        return cls(
            id=node.id,
            title=node.title,
            url=node.url or "",
            parent_id=node.parent_id,
            date_added=node.date_added,
            index=node.index,
        )


class Folder(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    parent_id: str | None = None
    index: int | None = None
    child_count: int = 0

    @classmethod
    def from_node(cls, node: BookmarkNode) -> Folder:
        return cls(
            id=node.id,
            title=node.title,
            parent_id=node.parent_id,
            index=node.index,
            child_count=len(node.children or ()),
        )


class FolderSummary(BaseModel):
    """Folder with bookmark counts, for folder pickers."""

    id: str
    title: str
    parent_id: str | None = None
    direct_bookmarks: int = 0
    total_bookmarks: int = 0
    children: list[FolderSummary] = Field(default_factory=list)
