from bookmark_organizer.adapters.bookmarks.bookmark_manager import BookmarkManager
from bookmark_organizer.adapters.bookmarks.chromium_store import ChromiumBookmarksFileStore
from bookmark_organizer.adapters.bookmarks.memory_store import InMemoryBookmarkStore
from bookmark_organizer.adapters.bookmarks.store_protocol import BookmarkStoreProtocol

__all__ = [
    "BookmarkManager",
    "BookmarkStoreProtocol",
    "ChromiumBookmarksFileStore",
    "InMemoryBookmarkStore",
]
