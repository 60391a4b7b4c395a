"""Bookmark store backed by a Chromium profile ``Bookmarks`` JSON file.

The browser must be closed while the file is edited; Chromium rewrites the
file from memory on exit and would discard changes made underneath it.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from bookmark_organizer.adapters.bookmarks.memory_store import InMemoryBookmarkStore
from bookmark_organizer.core.time_utils import chromium_to_epoch_ms, epoch_ms_to_chromium
from bookmark_organizer.exceptions import BookmarkStoreError

logger = logging.getLogger(__name__)

# (key under "roots", default id, default title)
CHROMIUM_ROOTS: tuple[tuple[str, str, str], ...] = (
    ("bookmark_bar", "1", "Bookmarks bar"),
    ("other", "2", "Other bookmarks"),
    ("synced", "3", "Mobile bookmarks"),
)

_NODE_FIELDS = frozenset({"id", "name", "url", "type", "children", "date_added"})


class ChromiumBookmarksFileStore(InMemoryBookmarkStore):
    """Loads the file once, then writes it back atomically after every mutation."""

    def __init__(self, path: str | os.PathLike[str], *, autosave: bool = True) -> None:
        self._path = Path(path).expanduser()
        self._autosave = autosave
        try:
            self._document: dict[str, Any] = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            msg = f"Bookmarks file not found: {self._path}"
            raise BookmarkStoreError(msg) from exc
        except (OSError, ValueError) as exc:
            msg = f"Cannot read bookmarks file {self._path}: {exc}"
            raise BookmarkStoreError(msg) from exc

        raw_roots = self._document.get("roots")
        if not isinstance(raw_roots, dict):
            msg = f"Bookmarks file {self._path} has no 'roots' object"
            raise BookmarkStoreError(msg)

        present = [
            (key, raw_roots.get(key) or {}, default_id, default_title)
            for key, default_id, default_title in CHROMIUM_ROOTS
        ]
        super().__init__(
            roots=tuple(
                (str(node.get("id") or default_id), str(node.get("name") or default_title))
                for _, node, default_id, default_title in present
            )
        )

        self._root_keys: dict[str, str] = {}
        for key, node, default_id, _ in present:
            root_id = str(node.get("id") or default_id)
            self._root_keys[root_id] = key
            record = self._records[root_id]
            record.date_added = chromium_to_epoch_ms(node.get("date_added"))
            record.extra = {k: v for k, v in node.items() if k not in _NODE_FIELDS}
            self._load_children(root_id, node.get("children") or [])

        logger.info(
            "bookmarks_file_loaded",
            extra={"path": str(self._path), "nodes": len(self)},
        )

    @property
    def path(self) -> Path:
        return self._path

    def _load_children(self, parent_id: str, nodes: list[dict[str, Any]]) -> None:
        for node in nodes:
            if not isinstance(node, dict):
                continue
            extra = {k: v for k, v in node.items() if k not in _NODE_FIELDS}
            node_id = str(node["id"]) if node.get("id") not in (None, "") else None
            if node_id is not None and node_id in self._records:
                node_id = None
            date_added = chromium_to_epoch_ms(node.get("date_added"))
            if node.get("type") == "folder":
                folder_id = self.add_folder(
                    parent_id,
                    str(node.get("name") or ""),
                    date_added=date_added,
                    node_id=node_id,
                    extra=extra,
                )
                self._load_children(folder_id, node.get("children") or [])
            elif node.get("url"):
                self.add_bookmark(
                    parent_id,
                    str(node.get("name") or ""),
                    str(node["url"]),
                    date_added=date_added,
                    node_id=node_id,
                    extra=extra,
                )

    def _serialize(self, node_id: str) -> dict[str, Any]:
        record = self._records[node_id]
        node: dict[str, Any] = dict(record.extra)
        node["id"] = record.id
        node["name"] = record.title
        node["date_added"] = epoch_ms_to_chromium(record.date_added)
        if record.is_folder:
            node["type"] = "folder"
            node["children"] = [self._serialize(child_id) for child_id in record.children]
        else:
            node["type"] = "url"
            node["url"] = record.url
        return node

    def save(self) -> None:
        """Write the tree back, replacing the file atomically.

        The checksum is dropped; Chromium recomputes it on the next load.
        """
        document = {k: v for k, v in self._document.items() if k != "checksum"}
        roots = dict(self._document.get("roots") or {})
        for root_id, key in self._root_keys.items():
            roots[key] = self._serialize(root_id)
        document["roots"] = roots

        payload = json.dumps(document, ensure_ascii=False, indent=3)
        fd, tmp_name = tempfile.mkstemp(
            prefix=".bookmarks-", suffix=".tmp", dir=str(self._path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            msg = f"Failed to write bookmarks file {self._path}: {exc}"
            raise BookmarkStoreError(msg) from exc
        self._document = document
        logger.debug("bookmarks_file_saved", extra={"path": str(self._path)})

    def _on_mutated(self) -> None:
        if self._autosave:
            self.save()
