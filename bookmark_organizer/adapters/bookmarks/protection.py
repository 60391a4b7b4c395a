"""Static rules for folders the pipeline must never delete or create."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bookmark_organizer.models.bookmarks import Folder

ROOT_ID = "0"
BOOKMARKS_BAR_ID = "1"
OTHER_BOOKMARKS_ID = "2"
MOBILE_BOOKMARKS_ID = "3"

# 0=root, 1=bookmarks bar, 2=other bookmarks, 3=mobile, 4=trash (Vivaldi)
SYSTEM_FOLDER_IDS = frozenset({"0", "1", "2", "3", "4"})

# Titles the browser itself owns; never created, renamed into, or removed.
SYSTEM_FOLDER_NAMES = frozenset(
    {
        "bookmarks bar",
        "other bookmarks",
        "mobile bookmarks",
        "trash",
        "bookmarks menu",
        "toolbar",
        "unsorted bookmarks",
    }
)

# Platform-generated folders (Vivaldi Speed Dial) that cannot be deleted.
PLATFORM_RESERVED_NAMES = frozenset({"speed dial", "home", "shopping", "travel"})

PROTECTED_FOLDER_NAMES = SYSTEM_FOLDER_NAMES | PLATFORM_RESERVED_NAMES

RESERVED_FOLDER_RENAMES: dict[str, str] = {
    "Home": "Home & Lifestyle",
    "Shopping": "Shopping & E-commerce",
    "Travel": "Travel & Transportation",
}

RENAMED_RESERVED_FOLDER_NAMES = frozenset(
    name.casefold() for name in RESERVED_FOLDER_RENAMES.values()
)

SAVED_TABS_PREFIX = "saved tabs"

# Top-level titles that are never part of the existing-folder vocabulary.
NON_CATEGORY_TITLES = frozenset({"bookmarks bar", "other bookmarks", "mobile bookmarks"})


def normalize_title(title: str | None) -> str:
    """Trimmed, case-folded title used for every name comparison."""
    return (title or "").strip().casefold()


def is_saved_tabs_folder(title: str | None) -> bool:
    return normalize_title(title).startswith(SAVED_TABS_PREFIX)


def is_protected_folder(folder: Folder, *, allow_saved_tabs: bool = False) -> bool:
    """Return True for folders that empty-folder pruning must never remove.

    Checked in order: system ids, system and platform-reserved names,
    reserved folders after their category rename, and browser-generated
    "Saved Tabs" folders unless ``allow_saved_tabs``.
    """
    if folder.id in SYSTEM_FOLDER_IDS:
        return True

    name = normalize_title(folder.title)
    if name in PROTECTED_FOLDER_NAMES:
        return True
    if name in RENAMED_RESERVED_FOLDER_NAMES:
        return True
    if name.startswith(SAVED_TABS_PREFIX) and not allow_saved_tabs:
        return True
    return not folder.parent_id or folder.parent_id == ROOT_ID


def is_forbidden_creation_title(title: str) -> bool:
    """Category names that would impersonate a browser-owned folder."""
    return normalize_title(title) in SYSTEM_FOLDER_NAMES
