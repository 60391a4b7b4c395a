"""Outcome report returned by every reorganization run."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bookmark_organizer.models.classification import Coercion
from bookmark_organizer.models.llm.llm_models import TokenUsage


class RunStatus(str, Enum):
    COMPLETED = "completed"
    NOTHING_TO_DO = "nothing_to_do"
    PARTIAL = "partial"
    FAILED = "failed"


class FailureKind(str, Enum):
    CONFIGURATION = "configuration"
    CLASSIFICATION = "classification"
    CATASTROPHIC = "catastrophic"


class BookmarkMove(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str
    title: str
    url: str
    from_folder_id: str | None
    from_folder: str
    to_folder_id: str
    to_folder: str


class DuplicateRemoved(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str
    title: str
    url: str
    kept_item_id: str


class FolderCreated(BaseModel):
    model_config = ConfigDict(frozen=True)

    folder_id: str
    title: str


class EmptyFolderRemoved(BaseModel):
    model_config = ConfigDict(frozen=True)

    folder_id: str
    title: str


class FolderRenamed(BaseModel):
    model_config = ConfigDict(frozen=True)

    folder_id: str
    old_title: str
    new_title: str


class DuplicateRemovalResult(BaseModel):
    removed: list[DuplicateRemoved] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return len(self.removed)


class PruneResult(BaseModel):
    removed: list[EmptyFolderRemoved] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    passes: int = 0

    @property
    def removed_count(self) -> int:
        return len(self.removed)

    @property
    def removed_names(self) -> list[str]:
        """Names of removed folders, each reported once, in removal order."""
        seen: set[str] = set()
        names: list[str] = []
        for folder in self.removed:
            if folder.title in seen:
                continue
            seen.add(folder.title)
            names.append(folder.title)
        return names


class PreviewResult(BaseModel):
    total_candidates: int
    folders_to_create: list[str]
    estimated_batches: int
    vocabulary: list[str] = Field(default_factory=list)
    skipped_by_history: int = 0


class OutcomeReport(BaseModel):
    """Aggregate result of one run.

    Every counter is derived from the itemized mutation lists, so the report
    never claims more than what was actually applied to the store.
    """

    status: RunStatus
    failure_kind: FailureKind | None = None
    run_kind: str = "full"
    correlation_id: str | None = None
    started_at: dt.datetime | None = None
    finished_at: dt.datetime | None = None

    candidates: int = 0
    skipped: int = 0
    total_batches: int = 0
    batches_completed: int = 0
    failed_batch: int | None = None

    moves: list[BookmarkMove] = Field(default_factory=list)
    duplicates: list[DuplicateRemoved] = Field(default_factory=list)
    folders: list[FolderCreated] = Field(default_factory=list)
    empty_folders: list[EmptyFolderRemoved] = Field(default_factory=list)
    empty_folder_names: list[str] = Field(default_factory=list)
    renamed_folders: list[FolderRenamed] = Field(default_factory=list)
    kept_in_place: list[str] = Field(default_factory=list)
    coercions: list[Coercion] = Field(default_factory=list)

    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    cost_usd: float | None = None
    errors: list[str] = Field(default_factory=list)

    @property
    def bookmarks_moved(self) -> int:
        return len(self.moves)

    @property
    def folders_created(self) -> int:
        return len(self.folders)

    @property
    def duplicates_removed(self) -> int:
        return len(self.duplicates)

    @property
    def empty_folders_removed(self) -> int:
        return len(self.empty_folders)

    def counters(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "bookmarks_moved": self.bookmarks_moved,
            "folders_created": self.folders_created,
            "duplicates_removed": self.duplicates_removed,
            "empty_folders_removed": self.empty_folders_removed,
            "skipped": self.skipped,
            "kept_in_place": len(self.kept_in_place),
            "coercions": len(self.coercions),
            "errors": len(self.errors),
            "tokens_total": self.token_usage.total_tokens,
        }
