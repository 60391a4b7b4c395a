"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from bookmark_organizer.adapters.bookmarks.bookmark_manager import BookmarkManager
from bookmark_organizer.adapters.bookmarks.memory_store import InMemoryBookmarkStore
from bookmark_organizer.db.session import DatabaseSessionManager
from bookmark_organizer.infrastructure.persistence.sqlite.repositories import (
    SqliteHistoryRepositoryAdapter,
    SqliteRunStateRepositoryAdapter,
)
from bookmark_organizer.models.bookmarks import BookmarkItem
from bookmark_organizer.services.history_tracker import HistoryTracker

ENV_VARS_TO_CLEAR = (
    "LLM_PROVIDER",
    "LLM_API_KEY",
    "OPENROUTER_API_KEY",
    "LLM_MODEL",
    "LLM_CUSTOM_ENDPOINT",
    "CATEGORIES",
    "BATCH_SIZE",
    "RESPECT_ORGANIZATION_HISTORY",
    "USE_EXISTING_FOLDERS",
    "IGNORE_FOLDERS",
    "BOOKMARKS_FILE",
    "DB_PATH",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep the developer's environment and .env file out of every test."""
    for name in ENV_VARS_TO_CLEAR:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def store() -> InMemoryBookmarkStore:
    return InMemoryBookmarkStore()


@pytest.fixture
def manager(store: InMemoryBookmarkStore) -> BookmarkManager:
    return BookmarkManager(store)


@pytest.fixture
def db_session() -> Iterator[DatabaseSessionManager]:
    """In-memory SQLite database with all tables created."""
    session = DatabaseSessionManager(":memory:")
    session.migrate()
    yield session
    session.close()


@pytest.fixture
def history_repository(db_session: DatabaseSessionManager) -> SqliteHistoryRepositoryAdapter:
    return SqliteHistoryRepositoryAdapter(db_session)


@pytest.fixture
def run_state_repository(db_session: DatabaseSessionManager) -> SqliteRunStateRepositoryAdapter:
    return SqliteRunStateRepositoryAdapter(db_session)


@pytest.fixture
def history(history_repository: SqliteHistoryRepositoryAdapter) -> HistoryTracker:
    return HistoryTracker(history_repository)


def make_items(*titles_and_urls: tuple[str, str], parent_id: str = "1") -> list[BookmarkItem]:
    """Build detached ``BookmarkItem`` values with ids ``b1``, ``b2``, ..."""
    return [
        BookmarkItem(id=f"b{n}", title=title, url=url, parent_id=parent_id)
        for n, (title, url) in enumerate(titles_and_urls, start=1)
    ]
