"""Protocol definitions for the orchestrator's collaborators.

The SQLite adapters and the classifier client satisfy these structurally;
tests substitute in-memory fakes.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

from bookmark_organizer.models.bookmarks import BookmarkItem
from bookmark_organizer.models.classification import BatchClassification


class HistoryRepository(Protocol):
    """Protocol for organization history persistence."""

    async def async_is_moved(self, bookmark_id: str) -> bool: ...

    async def async_get_moved_ids(self) -> set[str]: ...

    async def async_mark_moved(self, bookmark_id: str, category: str | None = None) -> None:
        """Record ``bookmark_id`` as placed; overwrites any earlier entry."""
        ...

    async def async_mark_many(
        self, bookmark_ids: Iterable[str], category: str | None = None
    ) -> int: ...

    async def async_clear(self) -> int:
        """Delete every history entry.

        Returns:
            Number of entries removed.

        """
        ...


class RunStateRepository(Protocol):
    """Protocol for state that outlives a single run."""

    async def async_get_protected_folder_ids(self) -> set[str]: ...

    async def async_add_protected_folders(
        self, folders: Iterable[tuple[str, str]], reason: str = "renamed_reserved"
    ) -> int: ...

    async def async_save_report(
        self,
        report: dict[str, Any],
        *,
        correlation_id: str | None,
        kind: str,
        status: str,
    ) -> int: ...

    async def async_get_last_report(self) -> dict[str, Any] | None: ...


class Classifier(Protocol):
    """Protocol for batch classification."""

    @property
    def allow_keep_current(self) -> bool: ...

    async def classify_batch(
        self,
        items: Sequence[BookmarkItem],
        vocabulary: Sequence[str],
        destination_counts: Mapping[str, int] | None = None,
        *,
        batch_number: int | None = None,
        total_batches: int | None = None,
    ) -> BatchClassification:
        """Return one assignment per item, or raise.

        Raises:
            ConfigurationError: Empty vocabulary.
            BatchClassificationError: Terminal error or retries exhausted.

        """
        ...
