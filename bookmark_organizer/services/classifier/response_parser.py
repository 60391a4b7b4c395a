"""Strict, index-based parsing of classifier replies."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from bookmark_organizer.core.json_utils import extract_json
from bookmark_organizer.exceptions import ReplyParseError
from bookmark_organizer.models.bookmarks import BookmarkItem

logger = logging.getLogger(__name__)


def _coerce_index(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def parse_classification_reply(text: str | None, items: Sequence[BookmarkItem]) -> list[str]:
    """Return the raw destination for every item, in batch order.

    Entries are matched by their 1-based ``i`` index. The older
    ``{"bookmarkId": ..., "folderName": ...}`` shape is accepted when the id
    belongs to the batch. Duplicate indices keep the first entry.

    Raises:
        ReplyParseError: If the reply does not decode, or any index is missing.
    """
    payload = extract_json(text)
    if payload is None:
        raise ReplyParseError("Failed to parse classifier reply as JSON")

    entries = payload.get("suggestions") if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        raise ReplyParseError("Classifier reply has no 'suggestions' list")

    position_by_id = {item.id: pos for pos, item in enumerate(items, start=1)}
    destinations: dict[int, str] = {}
    ignored = 0

    for entry in entries:
        if not isinstance(entry, dict):
            ignored += 1
            continue

        index = _coerce_index(entry.get("i"))
        destination = entry.get("f")
        if index is None and "bookmarkId" in entry:
            index = position_by_id.get(str(entry.get("bookmarkId")))
            destination = entry.get("folderName", destination)

        if index is None or not 1 <= index <= len(items) or not isinstance(destination, str):
            ignored += 1
            continue
        if index in destinations:
            ignored += 1
            continue
        destinations[index] = destination.strip()

    if ignored:
        logger.warning(
            "classifier_reply_entries_ignored",
            extra={"ignored": ignored, "batch_size": len(items)},
        )

    missing = [pos for pos in range(1, len(items) + 1) if pos not in destinations]
    if missing:
        raise ReplyParseError(
            f"Classifier reply is missing {len(missing)} of {len(items)} items",
            missing_indices=missing,
        )

    return [destinations[pos] for pos in range(1, len(items) + 1)]
