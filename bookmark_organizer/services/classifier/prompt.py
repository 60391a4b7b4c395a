"""Prompt construction for batch classification."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from bookmark_organizer.core.url_utils import extract_host
from bookmark_organizer.models.bookmarks import BookmarkItem
from bookmark_organizer.models.classification import KEEP_CURRENT

MAX_TITLE_LENGTH = 200
MAX_SIZE_HINT_ENTRIES = 50

SYSTEM_PROMPT = (
    "You sort browser bookmarks into a fixed list of folders. "
    "Reply with compact JSON only, no commentary."
)


def _clean_title(title: str) -> str:
    flattened = " ".join((title or "").split())
    if not flattened:
        return "(untitled)"
    if len(flattened) > MAX_TITLE_LENGTH:
        return flattened[: MAX_TITLE_LENGTH - 1] + "…"
    return flattened


def format_item_line(position: int, item: BookmarkItem) -> str:
    """``"{i}. {title} [{host}]"``; only the host of the URL is ever sent."""
    return f"{position}. {_clean_title(item.title)} [{extract_host(item.url)}]"


def build_classification_messages(
    items: Sequence[BookmarkItem],
    vocabulary: Sequence[str],
    *,
    destination_counts: Mapping[str, int] | None = None,
    allow_keep_current: bool = True,
) -> list[dict[str, str]]:
    count = len(items)
    folder_lines = "\n".join(f"{i}. {name}" for i, name in enumerate(vocabulary, start=1))
    item_lines = "\n".join(format_item_line(i, item) for i, item in enumerate(items, start=1))

    sections = [
        f"Assign each of these {count} bookmarks to the most appropriate folder.",
        f"APPROVED FOLDERS (use ONLY these names):\n{folder_lines}",
        f"Bookmarks:\n{item_lines}",
    ]

    sizes = [
        (name, n)
        for name, n in (destination_counts or {}).items()
        if n > 0 and name != KEEP_CURRENT
    ]
    if sizes:
        sizes.sort(key=lambda pair: (-pair[1], pair[0]))
        size_lines = "\n".join(
            f"{name}: {n} bookmarks" for name, n in sizes[:MAX_SIZE_HINT_ENTRIES]
        )
        sections.append(
            "Folders already filled by earlier bookmarks (prefer reusing these when they fit):\n"
            + size_lines
        )

    if allow_keep_current:
        destination_rule = (
            f'"f" must be one of the approved folder names, or "{KEEP_CURRENT}" when the '
            "bookmark is already well placed and fits no approved folder better."
        )
        example_value = f"Folder Name or {KEEP_CURRENT}"
    else:
        destination_rule = '"f" must be exactly one of the approved folder names.'
        example_value = "Folder Name"

    sections.append(
        "Return JSON with ALL bookmarks, one entry each:\n"
        f'{{"suggestions": [{{"i": 1, "f": "{example_value}"}}]}}\n'
        f'Rules: include every index from 1 to {count}; "i" is the bookmark number; '
        + destination_rule
    )

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n\n".join(sections)},
    ]
