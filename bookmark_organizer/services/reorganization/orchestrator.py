"""Reorganization pipeline: scan, classify in batches, apply, prune, report."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bookmark_organizer.adapters.bookmarks.protection import (
    NON_CATEGORY_TITLES,
    RESERVED_FOLDER_RENAMES,
    normalize_title,
)
from bookmark_organizer.config.organization import HistoryPolicy
from bookmark_organizer.core.async_utils import maybe_await, raise_if_cancelled
from bookmark_organizer.core.logging_utils import generate_correlation_id
from bookmark_organizer.core.time_utils import utc_now
from bookmark_organizer.exceptions import (
    BatchClassificationError,
    ConfigurationError,
    ReorganizationInProgressError,
)
from bookmark_organizer.models.classification import KEEP_CURRENT, Assignment, Coercion
from bookmark_organizer.models.llm.llm_models import TokenUsage
from bookmark_organizer.models.report import (
    BookmarkMove,
    DuplicateRemoved,
    EmptyFolderRemoved,
    FailureKind,
    FolderCreated,
    FolderRenamed,
    OutcomeReport,
    PreviewResult,
    RunStatus,
)
from bookmark_organizer.services.classifier.client import EMPTY_VOCABULARY_MESSAGE
from bookmark_organizer.services.exclusions import ExclusionResolver
from bookmark_organizer.services.reorganization.run_state import (
    IDLE_STATE,
    ProgressCallback,
    RunPhase,
    RunState,
)

if TYPE_CHECKING:
    import datetime as dt

    from bookmark_organizer.adapters.bookmarks.bookmark_manager import BookmarkManager
    from bookmark_organizer.config.organization import OrganizationConfig
    from bookmark_organizer.config.settings import AppConfig
    from bookmark_organizer.models.bookmarks import BookmarkItem, Folder
    from bookmark_organizer.protocols import Classifier, RunStateRepository
    from bookmark_organizer.services.history_tracker import HistoryTracker

logger = logging.getLogger(__name__)

PROGRESS_EVERY_MOVES = 10
MISSING_CLASSIFIER_MESSAGE = (
    "No LLM classifier configured. Set LLM_API_KEY to run a reorganization."
)
NO_FOLDERS_SELECTED_MESSAGE = "No folders selected for reorganization."


@dataclass
class _RunLedger:
    """Mutations actually applied during one run; the report is built from it."""

    kind: str
    correlation_id: str
    started_at: dt.datetime
    candidates: int = 0
    skipped: int = 0
    total_batches: int = 0
    batches_completed: int = 0
    failed_batch: int | None = None
    moves: list[BookmarkMove] = field(default_factory=list)
    duplicates: list[DuplicateRemoved] = field(default_factory=list)
    folders: list[FolderCreated] = field(default_factory=list)
    empty_folders: list[EmptyFolderRemoved] = field(default_factory=list)
    empty_folder_names: list[str] = field(default_factory=list)
    renamed_folders: list[FolderRenamed] = field(default_factory=list)
    kept_in_place: list[str] = field(default_factory=list)
    coercions: list[Coercion] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost_usd: float | None = None
    errors: list[str] = field(default_factory=list)

    def add_cost(self, cost: float | None) -> None:
        if cost is not None:
            self.cost_usd = (self.cost_usd or 0.0) + cost

    def to_report(
        self, status: RunStatus, failure_kind: FailureKind | None = None
    ) -> OutcomeReport:
        return OutcomeReport(
            status=status,
            failure_kind=failure_kind,
            run_kind=self.kind,
            correlation_id=self.correlation_id,
            started_at=self.started_at,
            finished_at=utc_now(),
            candidates=self.candidates,
            skipped=self.skipped,
            total_batches=self.total_batches,
            batches_completed=self.batches_completed,
            failed_batch=self.failed_batch,
            moves=list(self.moves),
            duplicates=list(self.duplicates),
            folders=list(self.folders),
            empty_folders=list(self.empty_folders),
            empty_folder_names=list(self.empty_folder_names),
            renamed_folders=list(self.renamed_folders),
            kept_in_place=list(self.kept_in_place),
            coercions=list(self.coercions),
            token_usage=self.usage,
            cost_usd=self.cost_usd,
            errors=list(self.errors),
        )


class ReorganizationOrchestrator:
    """Composes the store adapter, classifier and history into one run.

    Only one run may be active per instance; a second request raises
    ``ReorganizationInProgressError`` immediately. Batches are classified
    sequentially and the plan is all-or-nothing: if any batch fails, no
    bookmark is moved.
    """

    def __init__(
        self,
        manager: BookmarkManager,
        history: HistoryTracker,
        config: OrganizationConfig,
        *,
        classifier: Classifier | None = None,
        run_state_repository: RunStateRepository | None = None,
        batch_size: int = 50,
    ) -> None:
        if batch_size < 1:
            msg = f"batch_size must be positive, got {batch_size}"
            raise ValueError(msg)
        self._manager = manager
        self._history = history
        self._config = config
        self._classifier = classifier
        self._run_state_repository = run_state_repository
        self._batch_size = batch_size
        self._exclusions = ExclusionResolver(manager, config)
        self._state: RunState = IDLE_STATE
        self._running = False
        self._on_progress: ProgressCallback | None = None

    @classmethod
    def from_config(
        cls,
        manager: BookmarkManager,
        history: HistoryTracker,
        config: AppConfig,
        *,
        classifier: Classifier | None = None,
        run_state_repository: RunStateRepository | None = None,
    ) -> ReorganizationOrchestrator:
        return cls(
            manager,
            history,
            config.organization,
            classifier=classifier,
            run_state_repository=run_state_repository,
            batch_size=config.performance.batch_size,
        )

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    # -- public API -----------------------------------------------------------

    async def generate_preview(self, excluded_folder_ids: Iterable[str] = ()) -> PreviewResult:
        """Estimate a full run without mutating the store or calling the classifier.

        ``folders_to_create`` is an upper bound: a category only gets created
        if the classifier assigns at least one bookmark to it.
        """
        vocabulary = await self._resolve_vocabulary()
        candidates, skipped = await self._scan(excluded_folder_ids, folder_scope=None)
        existing = {normalize_title(f.title) for f in await self._manager.get_top_level_folders()}
        to_create = [name for name in vocabulary if normalize_title(name) not in existing]
        return PreviewResult(
            total_candidates=len(candidates),
            folders_to_create=to_create,
            estimated_batches=math.ceil(len(candidates) / self._batch_size),
            vocabulary=vocabulary,
            skipped_by_history=skipped,
        )

    async def execute_reorganization(
        self,
        excluded_folder_ids: Iterable[str] = (),
        on_progress: ProgressCallback | None = None,
    ) -> OutcomeReport:
        """Reorganize every bookmark outside the excluded folders.

        Raises:
            ReorganizationInProgressError: If a run is already active.
        """
        return await self._guarded_run(
            "full", list(excluded_folder_ids), None, on_progress
        )

    async def execute_reorganization_for_folders(
        self,
        folder_ids: Sequence[str],
        on_progress: ProgressCallback | None = None,
    ) -> OutcomeReport:
        """Reorganize only the bookmarks inside ``folder_ids`` and their subfolders.

        Raises:
            ReorganizationInProgressError: If a run is already active.
        """
        return await self._guarded_run("folders", [], list(folder_ids), on_progress)

    async def clear_history(self) -> int:
        return await self._history.clear()

    async def mark_all_organized(self) -> int:
        return await self._history.mark_all_as_organized_without_moving(self._manager)

    async def get_last_report(self) -> OutcomeReport | None:
        if self._run_state_repository is None:
            return None
        payload = await self._run_state_repository.async_get_last_report()
        if payload is None:
            return None
        return OutcomeReport.model_validate(payload)

    # -- run lifecycle --------------------------------------------------------

    async def _guarded_run(
        self,
        kind: str,
        excluded_folder_ids: list[str],
        folder_scope: list[str] | None,
        on_progress: ProgressCallback | None,
    ) -> OutcomeReport:
        if self._running:
            logger.warning("reorganization_rejected_already_running")
            raise ReorganizationInProgressError
        self._running = True
        self._on_progress = on_progress

        ledger = _RunLedger(
            kind=kind, correlation_id=generate_correlation_id(), started_at=utc_now()
        )
        logger.info(
            "reorganization_started",
            extra={
                "correlation_id": ledger.correlation_id,
                "kind": kind,
                "excluded": excluded_folder_ids,
                "folder_scope": folder_scope,
            },
        )
        self._state = RunState(correlation_id=ledger.correlation_id)
        try:
            report = await self._run(ledger, excluded_folder_ids, folder_scope)
        except ConfigurationError as exc:
            logger.error(
                "reorganization_configuration_error",
                extra={"correlation_id": ledger.correlation_id, "error": exc.message},
            )
            ledger.errors.append(exc.message)
            report = ledger.to_report(RunStatus.FAILED, FailureKind.CONFIGURATION)
        except Exception as exc:
            raise_if_cancelled(exc)
            logger.exception(
                "reorganization_failed_catastrophically",
                extra={"correlation_id": ledger.correlation_id, "error": str(exc)},
            )
            ledger.errors.append(f"Fatal error: {exc}")
            report = ledger.to_report(RunStatus.FAILED, FailureKind.CATASTROPHIC)
        finally:
            self._running = False

        final_phase = RunPhase.ABORTED if report.status is RunStatus.FAILED else RunPhase.DONE
        await self._publish(final_phase, _summary_message(report))
        self._on_progress = None
        await self._persist_report(report)
        logger.info(
            "reorganization_finished",
            extra={"correlation_id": ledger.correlation_id, **report.counters()},
        )
        return report

    async def _run(
        self,
        ledger: _RunLedger,
        excluded_folder_ids: list[str],
        folder_scope: list[str] | None,
    ) -> OutcomeReport:
        # Configuration problems surface before anything is mutated.
        if folder_scope is not None and not folder_scope:
            raise ConfigurationError(NO_FOLDERS_SELECTED_MESSAGE)
        if self._classifier is None:
            raise ConfigurationError(MISSING_CLASSIFIER_MESSAGE)
        vocabulary = await self._resolve_vocabulary()

        if self._config.remove_duplicates:
            await self._publish(RunPhase.REMOVING_DUPLICATES, "Removing duplicate bookmarks...")
            await self._remove_duplicates(ledger, folder_scope)

        await self._publish(RunPhase.SCANNING, "Scanning bookmarks...")
        candidates, ledger.skipped = await self._scan(excluded_folder_ids, folder_scope)
        ledger.candidates = len(candidates)
        if not candidates:
            logger.info(
                "reorganization_nothing_to_do",
                extra={"correlation_id": ledger.correlation_id, "skipped": ledger.skipped},
            )
            status = RunStatus.NOTHING_TO_DO
            if ledger.duplicates:
                status = RunStatus.PARTIAL if ledger.errors else RunStatus.COMPLETED
            return ledger.to_report(status)

        renamed_ids: set[str] = set()
        if self._config.rename_reserved_folders:
            vocabulary, renamed_ids = await self._rename_reserved_folders(ledger, vocabulary)

        assignments = await self._classify(ledger, candidates, vocabulary)
        if assignments is None:
            return ledger.to_report(RunStatus.FAILED, FailureKind.CLASSIFICATION)

        await self._publish(RunPhase.RECONCILING, "Preparing folders...", current=0)
        folder_ids = await self._ensure_destinations(ledger, assignments)

        await self._publish(
            RunPhase.MUTATING, "Moving bookmarks...", current=0, total=len(candidates)
        )
        await self._apply_moves(ledger, candidates, assignments, folder_ids)

        if self._config.remove_empty_folders:
            await self._publish(RunPhase.PRUNING, "Cleaning up empty folders...")
            await self._prune(ledger, renamed_ids)

        status = RunStatus.PARTIAL if ledger.errors else RunStatus.COMPLETED
        return ledger.to_report(status)

    # -- steps ----------------------------------------------------------------

    async def _resolve_vocabulary(self) -> list[str]:
        if self._config.use_existing_folders:
            vocabulary = [
                folder.title
                for folder in await self._manager.get_top_level_folders()
                if normalize_title(folder.title) not in NON_CATEGORY_TITLES
                and folder.title.strip()
            ]
            if not vocabulary:
                msg = (
                    "No existing folders to organize into. "
                    "Create folders or disable USE_EXISTING_FOLDERS."
                )
                raise ConfigurationError(msg)
            return list(dict.fromkeys(vocabulary))

        vocabulary = list(self._config.categories)
        if not vocabulary:
            raise ConfigurationError(EMPTY_VOCABULARY_MESSAGE)
        return vocabulary

    async def _remove_duplicates(self, ledger: _RunLedger, folder_scope: list[str] | None) -> None:
        scope_ids: set[str] | None = None
        try:
            if folder_scope is not None:
                scoped = await self._manager.get_items_in_folders(folder_scope)
                scope_ids = {item.id for item in scoped}
            result = await self._manager.remove_duplicates(scope_ids)
        except Exception as exc:
            raise_if_cancelled(exc)
            logger.error(
                "duplicate_removal_failed",
                extra={"correlation_id": ledger.correlation_id, "error": str(exc)},
            )
            ledger.errors.append(f"Failed to remove duplicates: {exc}")
            return
        ledger.duplicates.extend(result.removed)
        ledger.errors.extend(result.errors)

    async def _scan(
        self, excluded_folder_ids: Iterable[str], folder_scope: list[str] | None
    ) -> tuple[list[BookmarkItem], int]:
        """Return ``(candidates, skipped_by_history)`` in store order."""
        ignored = await self._exclusions.resolve(excluded_folder_ids)
        if folder_scope is None:
            items = await self._manager.list_all_items()
        else:
            items = await self._manager.get_items_in_folders(folder_scope)
        candidates = [item for item in items if item.parent_id not in ignored and item.url]

        if not self._history_applies(full_scan=folder_scope is None):
            return candidates, 0

        moved = await self._history.moved_ids()
        remaining = [item for item in candidates if item.id not in moved]
        skipped = len(candidates) - len(remaining)
        if skipped:
            logger.info("history_skipped_bookmarks", extra={"skipped": skipped})
        return remaining, skipped

    def _history_applies(self, *, full_scan: bool) -> bool:
        policy = self._config.respect_organization_history
        if policy is HistoryPolicy.ALWAYS:
            return True
        if policy is HistoryPolicy.ON_FULL_SCAN_ONLY:
            return full_scan
        return False

    async def _rename_reserved_folders(
        self, ledger: _RunLedger, vocabulary: list[str]
    ) -> tuple[list[str], set[str]]:
        """Rename platform-reserved folders to their matching category.

        Only folders directly under the target parent are renamed, and only
        when the new name is an approved category.
        """
        categories = {normalize_title(name) for name in self._config.categories}
        top_level = await self._manager.get_top_level_folders()
        renamed: list[tuple[str, str]] = []

        for old_name, new_name in RESERVED_FOLDER_RENAMES.items():
            if normalize_title(new_name) not in categories:
                continue
            folder = next((f for f in top_level if f.title == old_name), None)
            if folder is None:
                continue
            try:
                await self._manager.rename_folder(folder.id, new_name)
            except Exception as exc:
                raise_if_cancelled(exc)
                logger.warning(
                    "reserved_folder_rename_failed",
                    extra={"folder_id": folder.id, "title": old_name, "error": str(exc)},
                )
                continue
            renamed.append((folder.id, new_name))
            ledger.renamed_folders.append(
                FolderRenamed(folder_id=folder.id, old_title=old_name, new_title=new_name)
            )
            vocabulary = [new_name if name == old_name else name for name in vocabulary]

        if renamed and self._run_state_repository is not None:
            try:
                await self._run_state_repository.async_add_protected_folders(renamed)
            except Exception as exc:
                raise_if_cancelled(exc)
                logger.warning("protected_folders_save_failed", extra={"error": str(exc)})

        return list(dict.fromkeys(vocabulary)), {folder_id for folder_id, _ in renamed}

    async def _classify(
        self,
        ledger: _RunLedger,
        candidates: list[BookmarkItem],
        vocabulary: list[str],
    ) -> list[Assignment] | None:
        """Classify all batches; ``None`` means a batch failed and nothing may be applied."""
        assert self._classifier is not None
        batches = [
            candidates[start : start + self._batch_size]
            for start in range(0, len(candidates), self._batch_size)
        ]
        ledger.total_batches = len(batches)
        allowed = {*vocabulary, KEEP_CURRENT}
        destination_counts: dict[str, int] = {}
        assignments: list[Assignment] = []

        for number, batch in enumerate(batches, 1):
            await self._publish(
                RunPhase.BATCH_CLASSIFYING,
                f"Assigning batch {number}/{len(batches)}",
                current=(number - 1) * self._batch_size,
                total=len(candidates),
                batch_number=number,
                total_batches=len(batches),
            )
            try:
                result = await self._classifier.classify_batch(
                    batch,
                    vocabulary,
                    dict(destination_counts),
                    batch_number=number,
                    total_batches=len(batches),
                )
            except BatchClassificationError as exc:
                self._fail_batch(ledger, number, exc.message)
                return None

            problem = _check_batch_result(batch, result.assignments, allowed)
            if problem is not None:
                self._fail_batch(ledger, number, problem)
                return None

            ledger.batches_completed += 1
            ledger.usage = ledger.usage + result.usage
            ledger.add_cost(result.cost_usd)
            ledger.coercions.extend(result.coercions)
            assignments.extend(result.assignments)
            for destination, count in result.destination_counts().items():
                if destination != KEEP_CURRENT:
                    destination_counts[destination] = destination_counts.get(destination, 0) + count

            logger.info(
                "batch_classified",
                extra={
                    "correlation_id": ledger.correlation_id,
                    "batch": number,
                    "total_batches": len(batches),
                    "attempts": result.attempts,
                    "coerced": len(result.coercions),
                },
            )

        return assignments

    def _fail_batch(self, ledger: _RunLedger, number: int, message: str) -> None:
        ledger.failed_batch = number
        ledger.errors.append(f"Batch {number} failed: {message}")
        ledger.errors.append(
            f"Processing stopped at batch {number} of {ledger.total_batches}. {message}"
        )
        logger.error(
            "reorganization_batch_failed",
            extra={
                "correlation_id": ledger.correlation_id,
                "batch": number,
                "total_batches": ledger.total_batches,
                "completed": ledger.batches_completed,
                "error": message,
            },
        )

    async def _ensure_destinations(
        self, ledger: _RunLedger, assignments: list[Assignment]
    ) -> dict[str, str]:
        """Map every used destination to a folder id, creating only what is missing."""
        used = list(
            dict.fromkeys(a.destination for a in assignments if not a.keeps_current)
        )
        existing: dict[str, Folder] = {}
        for folder in await self._manager.get_top_level_folders():
            existing.setdefault(normalize_title(folder.title), folder)

        folder_ids: dict[str, str] = {}
        for name in used:
            match = existing.get(normalize_title(name))
            if match is not None:
                folder_ids[name] = match.id
                continue
            try:
                folder_id, created = await self._manager.find_or_create_folder(name)
            except Exception as exc:
                raise_if_cancelled(exc)
                logger.error("folder_create_failed", extra={"title": name, "error": str(exc)})
                ledger.errors.append(f'Failed to create folder "{name}": {exc}')
                continue
            folder_ids[name] = folder_id
            if created:
                ledger.folders.append(FolderCreated(folder_id=folder_id, title=name))
        return folder_ids

    async def _apply_moves(
        self,
        ledger: _RunLedger,
        candidates: list[BookmarkItem],
        assignments: list[Assignment],
        folder_ids: dict[str, str],
    ) -> None:
        items = {item.id: item for item in candidates}
        titles = await self._manager.get_folder_titles()

        for assignment in assignments:
            item = items.get(assignment.item_id)
            if item is None:
                continue
            destination_id = folder_ids.get(assignment.destination)

            if assignment.keeps_current or destination_id == item.parent_id:
                ledger.kept_in_place.append(item.id)
                await self._record_history(ledger, item.id, None)
                continue
            if destination_id is None:
                ledger.errors.append(
                    f"Failed to move bookmark {item.id}: folder "
                    f'"{assignment.destination}" is unavailable'
                )
                continue

            try:
                await self._manager.move_item(item.id, destination_id)
            except Exception as exc:
                raise_if_cancelled(exc)
                logger.warning(
                    "bookmark_move_failed",
                    extra={
                        "item_id": item.id,
                        "destination": assignment.destination,
                        "error": str(exc),
                    },
                )
                ledger.errors.append(f"Failed to move bookmark {item.id}: {exc}")
                continue

            ledger.moves.append(
                BookmarkMove(
                    item_id=item.id,
                    title=item.title,
                    url=item.url,
                    from_folder_id=item.parent_id,
                    from_folder=titles.get(item.parent_id or "", "Unknown"),
                    to_folder_id=destination_id,
                    to_folder=assignment.destination,
                )
            )
            await self._record_history(ledger, item.id, assignment.destination)

            moved = len(ledger.moves)
            if moved % PROGRESS_EVERY_MOVES == 0:
                await self._publish(
                    RunPhase.MUTATING,
                    f"Moved {moved}/{len(candidates)} bookmarks",
                    current=moved,
                    total=len(candidates),
                )

    async def _record_history(self, ledger: _RunLedger, item_id: str, category: str | None) -> None:
        try:
            await self._history.mark_moved(item_id, category)
        except Exception as exc:
            raise_if_cancelled(exc)
            logger.warning("history_write_failed", extra={"item_id": item_id, "error": str(exc)})
            ledger.errors.append(f"Failed to record history for bookmark {item_id}: {exc}")

    async def _prune(self, ledger: _RunLedger, renamed_ids: set[str]) -> None:
        exclusions = set(renamed_ids)
        try:
            if self._run_state_repository is not None:
                exclusions |= await self._run_state_repository.async_get_protected_folder_ids()
            result = await self._manager.prune_empty_folders(
                exclusions, allow_saved_tabs=self._config.organize_saved_tabs
            )
        except Exception as exc:
            raise_if_cancelled(exc)
            logger.error("empty_folder_prune_failed", extra={"error": str(exc)})
            ledger.errors.append(f"Failed to remove empty folders: {exc}")
            return
        ledger.empty_folders.extend(result.removed)
        ledger.empty_folder_names.extend(result.removed_names)
        ledger.errors.extend(result.errors)

    # -- state & persistence --------------------------------------------------

    async def _publish(self, phase: RunPhase, message: str, **changes: object) -> None:
        self._state = self._state.advance(phase, message, **changes)
        callback = self._on_progress
        if callback is None:
            return
        try:
            await maybe_await(callback(self._state))
        except Exception as exc:
            raise_if_cancelled(exc)
            logger.warning("progress_callback_failed", extra={"error": str(exc)})

    async def _persist_report(self, report: OutcomeReport) -> None:
        if self._run_state_repository is None:
            return
        try:
            await self._run_state_repository.async_save_report(
                report.model_dump(mode="json"),
                correlation_id=report.correlation_id,
                kind=report.run_kind,
                status=report.status.value,
            )
        except Exception as exc:
            raise_if_cancelled(exc)
            logger.warning("run_report_save_failed", extra={"error": str(exc)})


def _check_batch_result(
    batch: Sequence[BookmarkItem],
    assignments: Sequence[Assignment],
    allowed: set[str],
) -> str | None:
    """Describe why a batch result can't be applied, or return ``None``."""
    expected = sorted(item.id for item in batch)
    returned = sorted(a.item_id for a in assignments)
    if returned != expected:
        missing = sorted(set(expected) - set(returned))
        unexpected = sorted(set(returned) - set(expected))
        return (
            f"classifier returned {len(returned)} assignments for {len(expected)} bookmarks "
            f"(missing: {missing[:10]}, unexpected: {unexpected[:10]})"
        )
    invented = sorted({a.destination for a in assignments if a.destination not in allowed})
    if invented:
        return f"classifier returned folders outside the approved list: {invented[:10]}"
    return None


def _summary_message(report: OutcomeReport) -> str:
    if report.status is RunStatus.NOTHING_TO_DO:
        return "No bookmarks need organizing"
    if report.status is RunStatus.FAILED:
        return report.errors[-1] if report.errors else "Reorganization failed"
    return f"Moved {report.bookmarks_moved} bookmarks into {report.folders_created} new folders"
