"""End-to-end tests for the reorganization pipeline against the in-memory store."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from typing import Any
from unittest.mock import AsyncMock

import pytest

from bookmark_organizer.adapters.bookmarks.bookmark_manager import BookmarkManager
from bookmark_organizer.adapters.bookmarks.memory_store import InMemoryBookmarkStore
from bookmark_organizer.config.organization import HistoryPolicy, OrganizationConfig
from bookmark_organizer.core.url_utils import extract_host
from bookmark_organizer.exceptions import BatchClassificationError, ReorganizationInProgressError
from bookmark_organizer.infrastructure.persistence.sqlite.repositories import (
    SqliteRunStateRepositoryAdapter,
)
from bookmark_organizer.models.bookmarks import BookmarkItem
from bookmark_organizer.models.classification import (
    KEEP_CURRENT,
    Assignment,
    BatchClassification,
    Coercion,
)
from bookmark_organizer.models.llm.llm_models import TokenUsage
from bookmark_organizer.models.report import FailureKind, RunStatus
from bookmark_organizer.services.classifier.client import EMPTY_VOCABULARY_MESSAGE
from bookmark_organizer.services.history_tracker import HistoryTracker
from bookmark_organizer.services.reorganization import (
    ReorganizationOrchestrator,
    RunPhase,
    RunState,
)
from bookmark_organizer.services.reorganization.orchestrator import (
    MISSING_CLASSIFIER_MESSAGE,
    NO_FOLDERS_SELECTED_MESSAGE,
)

HOST_CATEGORIES = {
    "github.com": "Tech",
    "python.org": "Tech",
    "bbc.com": "News",
    "cnn.com": "News",
}


def by_host(item: BookmarkItem) -> str:
    return HOST_CATEGORIES.get(extract_host(item.url), KEEP_CURRENT)


class FakeClassifier:
    """Deterministic classifier recording every call it receives."""

    def __init__(
        self,
        choose: Callable[[BookmarkItem], str] = by_host,
        *,
        allow_keep_current: bool = True,
        fail_on_batch: int | None = None,
    ) -> None:
        self._choose = choose
        self._allow_keep_current = allow_keep_current
        self._fail_on_batch = fail_on_batch
        self.calls: list[dict[str, Any]] = []

    @property
    def allow_keep_current(self) -> bool:
        return self._allow_keep_current

    async def classify_batch(
        self,
        items: Sequence[BookmarkItem],
        vocabulary: Sequence[str],
        destination_counts: Mapping[str, int] | None = None,
        *,
        batch_number: int | None = None,
        total_batches: int | None = None,
    ) -> BatchClassification:
        self.calls.append(
            {
                "ids": [item.id for item in items],
                "vocabulary": list(vocabulary),
                "destination_counts": dict(destination_counts or {}),
                "batch_number": batch_number,
                "total_batches": total_batches,
            }
        )
        if batch_number == self._fail_on_batch:
            msg = "HTTP 503: upstream unavailable (gave up after 6 attempts)"
            raise BatchClassificationError(
                msg, batch_number=batch_number, total_batches=total_batches, attempts=6
            )
        return BatchClassification(
            assignments=tuple(
                Assignment(item_id=item.id, index=n, destination=self._choose(item))
                for n, item in enumerate(items, 1)
            ),
            usage=TokenUsage.from_counts(100, 10),
            cost_usd=0.001,
        )


def _config(**overrides: Any) -> OrganizationConfig:
    values: dict[str, Any] = {"categories": ("Tech", "News")}
    values.update(overrides)
    return OrganizationConfig(**values)


def _orchestrator(
    manager: BookmarkManager,
    history: HistoryTracker,
    classifier: Any = None,
    *,
    run_state_repository: SqliteRunStateRepositoryAdapter | None = None,
    batch_size: int = 50,
    **config: Any,
) -> ReorganizationOrchestrator:
    return ReorganizationOrchestrator(
        manager,
        history,
        _config(**config),
        classifier=classifier,
        run_state_repository=run_state_repository,
        batch_size=batch_size,
    )


async def _parent_of(manager: BookmarkManager, item_id: str) -> str | None:
    for item in await manager.list_all_items():
        if item.id == item_id:
            return item.parent_id
    return None


async def _folder_titles(manager: BookmarkManager, parent_id: str = "1") -> list[str]:
    return [f.title for f in await manager.get_top_level_folders(parent_id)]


@pytest.mark.asyncio
class TestFullRun:
    async def test_duplicates_removed_then_bookmarks_sorted(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        github = store.add_bookmark("1", "GitHub", "https://github.com/", date_added=1)
        bbc = store.add_bookmark("2", "BBC", "https://www.bbc.com/news", date_added=2)
        copy = store.add_bookmark("2", "GitHub copy", "https://github.com/", date_added=3)
        classifier = FakeClassifier()

        report = await _orchestrator(manager, history, classifier).execute_reorganization()

        assert report.status is RunStatus.COMPLETED
        assert report.failure_kind is None
        assert [d.item_id for d in report.duplicates] == [copy]
        assert report.candidates == 2
        assert {m.item_id: m.to_folder for m in report.moves} == {github: "Tech", bbc: "News"}
        assert [f.title for f in report.folders] == ["Tech", "News"]
        assert report.errors == []
        assert await _folder_titles(manager) == ["Tech", "News"]
        assert await history.moved_ids() == {github, bbc}
        assert len(classifier.calls) == 1

    async def test_report_counts_match_mutations(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        for n in range(3):
            store.add_bookmark("2", f"Repo {n}", f"https://github.com/{n}")
        report = await _orchestrator(manager, history, FakeClassifier()).execute_reorganization()

        assert report.bookmarks_moved == 3
        assert report.folders_created == 1
        assert report.token_usage.total_tokens == 110
        assert report.cost_usd == pytest.approx(0.001)
        assert report.counters()["bookmarks_moved"] == 3

    async def test_move_records_source_folder(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        inbox = store.add_folder("1", "Inbox")
        store.add_bookmark(inbox, "CNN", "https://cnn.com")
        report = await _orchestrator(manager, history, FakeClassifier()).execute_reorganization()

        move = report.moves[0]
        assert (move.from_folder_id, move.from_folder) == (inbox, "Inbox")
        assert move.to_folder == "News"

    async def test_keep_current_is_left_in_place_and_remembered(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        odd = store.add_bookmark("2", "Odd", "https://unknown.example")
        store.add_bookmark("2", "GitHub", "https://github.com")

        report = await _orchestrator(manager, history, FakeClassifier()).execute_reorganization()

        assert report.kept_in_place == [odd]
        assert await _parent_of(manager, odd) == "2"
        assert await history.is_moved(odd)
        assert await _folder_titles(manager) == ["Tech"]

    async def test_existing_folder_reused_and_item_already_there_stays(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        tech = store.add_folder("1", "tech")
        placed = store.add_bookmark(tech, "Python", "https://python.org")
        loose = store.add_bookmark("2", "GitHub", "https://github.com")

        report = await _orchestrator(manager, history, FakeClassifier()).execute_reorganization()

        assert report.folders == []
        assert report.kept_in_place == [placed]
        assert [m.item_id for m in report.moves] == [loose]
        assert await _parent_of(manager, loose) == tech

    async def test_second_run_is_a_no_op(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("2", "GitHub", "https://github.com")
        store.add_bookmark("2", "BBC", "https://bbc.com")
        classifier = FakeClassifier()
        orchestrator = _orchestrator(manager, history, classifier)

        await orchestrator.execute_reorganization()
        second = await orchestrator.execute_reorganization()

        assert second.status is RunStatus.NOTHING_TO_DO
        assert second.skipped == 2
        assert second.moves == []
        assert len(classifier.calls) == 1

    async def test_history_ignored_when_policy_is_never(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        item = store.add_bookmark("2", "GitHub", "https://github.com")
        await history.mark_moved(item, "Tech")
        classifier = FakeClassifier()

        report = await _orchestrator(
            manager,
            history,
            classifier,
            respect_organization_history=HistoryPolicy.NEVER,
        ).execute_reorganization()

        assert report.skipped == 0
        assert report.bookmarks_moved == 1

    async def test_excluded_folders_are_untouched(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        keep = store.add_folder("2", "Keep")
        nested = store.add_folder(keep, "Nested")
        pinned = store.add_bookmark(nested, "GitHub", "https://github.com")
        store.add_bookmark("2", "BBC", "https://bbc.com")

        report = await _orchestrator(manager, history, FakeClassifier()).execute_reorganization(
            [keep]
        )

        assert report.candidates == 1
        assert await _parent_of(manager, pinned) == nested

    async def test_batches_carry_destination_counts(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("2", "GitHub", "https://github.com")
        store.add_bookmark("2", "Odd", "https://unknown.example")
        store.add_bookmark("2", "BBC", "https://bbc.com")
        classifier = FakeClassifier()

        report = await _orchestrator(
            manager, history, classifier, batch_size=2
        ).execute_reorganization()

        assert report.total_batches == 2
        assert report.batches_completed == 2
        assert [c["destination_counts"] for c in classifier.calls] == [{}, {"Tech": 1}]
        assert [c["batch_number"] for c in classifier.calls] == [1, 2]
        assert all(c["total_batches"] == 2 for c in classifier.calls)

    async def test_emptied_source_folders_are_pruned(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        old = store.add_folder("2", "Old stuff")
        store.add_bookmark(old, "GitHub", "https://github.com")
        store.add_folder("1", "Speed Dial")

        report = await _orchestrator(manager, history, FakeClassifier()).execute_reorganization()

        assert report.empty_folder_names == ["Old stuff"]
        assert "Speed Dial" in await _folder_titles(manager)

    async def test_pruning_can_be_disabled(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        old = store.add_folder("2", "Old stuff")
        store.add_bookmark(old, "GitHub", "https://github.com")

        report = await _orchestrator(
            manager, history, FakeClassifier(), remove_empty_folders=False
        ).execute_reorganization()

        assert report.empty_folders == []
        assert await _folder_titles(manager, "2") == ["Old stuff"]

    async def test_coercions_are_reported(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        item = store.add_bookmark("2", "GitHub", "https://github.com")
        classifier = FakeClassifier()
        coercion = Coercion(item_id=item, returned="Gardening", coerced_to=KEEP_CURRENT)
        original = classifier.classify_batch

        async def with_coercion(*args: Any, **kwargs: Any) -> BatchClassification:
            result = await original(*args, **kwargs)
            return result.model_copy(update={"coercions": (coercion,)})

        classifier.classify_batch = with_coercion  # type: ignore[method-assign]
        report = await _orchestrator(manager, history, classifier).execute_reorganization()

        assert report.coercions == [coercion]
        assert report.status is RunStatus.COMPLETED


@pytest.mark.asyncio
class TestReservedFolders:
    async def test_reserved_folder_renamed_to_category_and_kept(
        self,
        store: InMemoryBookmarkStore,
        manager: BookmarkManager,
        history: HistoryTracker,
        run_state_repository: SqliteRunStateRepositoryAdapter,
    ) -> None:
        home = store.add_folder("1", "Home")
        store.add_bookmark("2", "GitHub", "https://github.com")
        classifier = FakeClassifier()

        report = await _orchestrator(
            manager,
            history,
            classifier,
            run_state_repository=run_state_repository,
            categories=("Tech", "Home & Lifestyle"),
        ).execute_reorganization()

        assert [(r.folder_id, r.new_title) for r in report.renamed_folders] == [
            (home, "Home & Lifestyle")
        ]
        assert "Home & Lifestyle" in await _folder_titles(manager)
        assert await run_state_repository.async_get_protected_folder_ids() == {home}
        assert classifier.calls[0]["vocabulary"] == ["Tech", "Home & Lifestyle"]

    async def test_reserved_folder_left_alone_without_matching_category(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_folder("1", "Shopping")
        store.add_bookmark("2", "GitHub", "https://github.com")

        report = await _orchestrator(manager, history, FakeClassifier()).execute_reorganization()

        assert report.renamed_folders == []
        assert "Shopping" in await _folder_titles(manager)


@pytest.mark.asyncio
class TestFailures:
    async def test_empty_vocabulary_fails_before_any_mutation(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("1", "A", "https://github.com")
        store.add_bookmark("2", "A again", "https://github.com")
        classifier = FakeClassifier()

        report = await _orchestrator(
            manager, history, classifier, categories=()
        ).execute_reorganization()

        assert report.status is RunStatus.FAILED
        assert report.failure_kind is FailureKind.CONFIGURATION
        assert report.errors == [EMPTY_VOCABULARY_MESSAGE]
        assert classifier.calls == []
        assert len(await manager.list_all_items()) == 2

    async def test_missing_classifier(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("1", "A", "https://github.com")
        report = await _orchestrator(manager, history, None).execute_reorganization()
        assert report.failure_kind is FailureKind.CONFIGURATION
        assert report.errors == [MISSING_CLASSIFIER_MESSAGE]

    async def test_no_existing_folders_to_use(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("1", "A", "https://github.com")
        report = await _orchestrator(
            manager, history, FakeClassifier(), use_existing_folders=True
        ).execute_reorganization()
        assert report.failure_kind is FailureKind.CONFIGURATION
        assert "USE_EXISTING_FOLDERS" in report.errors[0]

    async def test_existing_folders_become_the_vocabulary(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_folder("1", "Tech")
        store.add_folder("1", "Reading")
        store.add_bookmark("2", "GitHub", "https://github.com")
        classifier = FakeClassifier()

        report = await _orchestrator(
            manager, history, classifier, use_existing_folders=True
        ).execute_reorganization()

        assert classifier.calls[0]["vocabulary"] == ["Tech", "Reading"]
        assert report.folders == []
        assert report.bookmarks_moved == 1

    async def test_failed_batch_applies_nothing(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        ids = [store.add_bookmark("2", f"Repo {n}", f"https://github.com/{n}") for n in range(5)]
        classifier = FakeClassifier(fail_on_batch=2)

        report = await _orchestrator(
            manager, history, classifier, batch_size=2
        ).execute_reorganization()

        assert report.status is RunStatus.FAILED
        assert report.failure_kind is FailureKind.CLASSIFICATION
        assert report.failed_batch == 2
        assert report.batches_completed == 1
        assert report.moves == []
        assert report.folders == []
        assert report.errors[0].startswith("Batch 2 failed: HTTP 503")
        assert report.errors[1].startswith("Processing stopped at batch 2 of 3.")
        assert len(classifier.calls) == 2
        assert [await _parent_of(manager, i) for i in ids] == ["2"] * 5
        assert await history.moved_ids() == set()
        assert await _folder_titles(manager) == []

    async def test_invented_destination_fails_the_batch(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        ids = [store.add_bookmark("2", f"Repo {n}", f"https://github.com/{n}") for n in range(3)]
        classifier = FakeClassifier(lambda item: "Gardening")

        report = await _orchestrator(
            manager, history, classifier, batch_size=2
        ).execute_reorganization()

        assert report.status is RunStatus.FAILED
        assert report.failure_kind is FailureKind.CLASSIFICATION
        assert report.failed_batch == 1
        assert "Gardening" in report.errors[0]
        assert len(classifier.calls) == 1
        assert report.moves == []
        assert report.folders == []
        assert await _folder_titles(manager) == []
        assert [await _parent_of(manager, i) for i in ids] == ["2"] * 3
        assert await history.moved_ids() == set()

    async def test_incomplete_batch_fails_the_run(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("2", "GitHub", "https://github.com")
        store.add_bookmark("2", "Python", "https://python.org")
        classifier = FakeClassifier()
        real_classify = classifier.classify_batch

        async def drop_last(*args: Any, **kwargs: Any) -> BatchClassification:
            result = await real_classify(*args, **kwargs)
            return result.model_copy(update={"assignments": result.assignments[:1]})

        classifier.classify_batch = drop_last  # type: ignore[method-assign]
        report = await _orchestrator(manager, history, classifier).execute_reorganization()

        assert report.status is RunStatus.FAILED
        assert report.failure_kind is FailureKind.CLASSIFICATION
        assert report.failed_batch == 1
        assert "1 assignments for 2 bookmarks" in report.errors[0]
        assert report.moves == []
        assert await _folder_titles(manager) == []

    async def test_unexpected_error_is_catastrophic(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("1", "A", "https://github.com")
        manager.list_all_items = AsyncMock(side_effect=RuntimeError("boom"))  # type: ignore[method-assign]

        report = await _orchestrator(
            manager, history, FakeClassifier(), remove_duplicates=False
        ).execute_reorganization()

        assert report.status is RunStatus.FAILED
        assert report.failure_kind is FailureKind.CATASTROPHIC
        assert report.errors == ["Fatal error: boom"]

    async def test_move_failure_gives_partial(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("2", "GitHub", "https://github.com")
        store.add_bookmark("2", "BBC", "https://bbc.com")
        real_move = manager.move_item

        async def flaky_move(item_id: str, folder_id: str) -> None:
            if item_id.endswith("5"):
                raise RuntimeError("node vanished")
            await real_move(item_id, folder_id)

        manager.move_item = flaky_move  # type: ignore[method-assign]
        report = await _orchestrator(manager, history, FakeClassifier()).execute_reorganization()

        assert report.status is RunStatus.PARTIAL
        assert report.bookmarks_moved == 1
        assert any("node vanished" in error for error in report.errors)

    async def test_concurrent_run_is_rejected(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("2", "GitHub", "https://github.com")
        entered = asyncio.Event()
        release = asyncio.Event()
        classifier = FakeClassifier()
        original = classifier.classify_batch

        async def slow(*args: Any, **kwargs: Any) -> BatchClassification:
            entered.set()
            await release.wait()
            return await original(*args, **kwargs)

        classifier.classify_batch = slow  # type: ignore[method-assign]
        orchestrator = _orchestrator(manager, history, classifier)

        first = asyncio.create_task(orchestrator.execute_reorganization())
        await entered.wait()
        assert orchestrator.is_running
        with pytest.raises(ReorganizationInProgressError):
            await orchestrator.execute_reorganization_for_folders(["2"])
        release.set()

        report = await first
        assert report.status is RunStatus.COMPLETED
        assert not orchestrator.is_running


@pytest.mark.asyncio
class TestFolderRuns:
    async def test_only_selected_folders_are_processed(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        inbox = store.add_folder("2", "Inbox")
        sub = store.add_folder(inbox, "Sub")
        inside = store.add_bookmark(sub, "GitHub", "https://github.com", date_added=5)
        outside = store.add_bookmark("2", "GitHub older", "https://github.com", date_added=1)
        other = store.add_bookmark("2", "BBC", "https://bbc.com")

        report = await _orchestrator(
            manager, history, FakeClassifier()
        ).execute_reorganization_for_folders([inbox])

        assert report.run_kind == "folders"
        assert report.duplicates == []
        assert [m.item_id for m in report.moves] == [inside]
        assert await _parent_of(manager, outside) == "2"
        assert await _parent_of(manager, other) == "2"

    async def test_history_skipped_only_on_full_scans(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        inbox = store.add_folder("2", "Inbox")
        item = store.add_bookmark(inbox, "GitHub", "https://github.com")
        await history.mark_moved(item, "Tech")
        orchestrator = _orchestrator(
            manager,
            history,
            FakeClassifier(),
            respect_organization_history=HistoryPolicy.ON_FULL_SCAN_ONLY,
        )

        assert (await orchestrator.generate_preview()).total_candidates == 0
        report = await orchestrator.execute_reorganization_for_folders([inbox])
        assert report.bookmarks_moved == 1

    async def test_empty_selection_is_a_configuration_error(
        self, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        report = await _orchestrator(
            manager, history, FakeClassifier()
        ).execute_reorganization_for_folders([])
        assert report.failure_kind is FailureKind.CONFIGURATION
        assert report.errors == [NO_FOLDERS_SELECTED_MESSAGE]


@pytest.mark.asyncio
class TestPreviewAndReports:
    async def test_preview_mutates_nothing(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_folder("1", "News")
        for n in range(3):
            store.add_bookmark("2", f"Repo {n}", f"https://github.com/{n}")
        classifier = FakeClassifier()
        before = await store.get_tree()

        preview = await _orchestrator(
            manager, history, classifier, batch_size=2
        ).generate_preview()

        assert preview.total_candidates == 3
        assert preview.estimated_batches == 2
        assert preview.folders_to_create == ["Tech"]
        assert preview.vocabulary == ["Tech", "News"]
        assert classifier.calls == []
        assert await store.get_tree() == before

    async def test_last_report_round_trip(
        self,
        store: InMemoryBookmarkStore,
        manager: BookmarkManager,
        history: HistoryTracker,
        run_state_repository: SqliteRunStateRepositoryAdapter,
    ) -> None:
        store.add_bookmark("2", "GitHub", "https://github.com")
        orchestrator = _orchestrator(
            manager, history, FakeClassifier(), run_state_repository=run_state_repository
        )
        assert await orchestrator.get_last_report() is None

        report = await orchestrator.execute_reorganization()
        loaded = await orchestrator.get_last_report()

        assert loaded is not None
        assert loaded.correlation_id == report.correlation_id
        assert loaded.status is RunStatus.COMPLETED
        assert loaded.moves == report.moves

    async def test_failed_runs_are_persisted_too(
        self,
        manager: BookmarkManager,
        history: HistoryTracker,
        run_state_repository: SqliteRunStateRepositoryAdapter,
    ) -> None:
        orchestrator = _orchestrator(
            manager, history, None, run_state_repository=run_state_repository
        )
        await orchestrator.execute_reorganization()
        loaded = await orchestrator.get_last_report()
        assert loaded is not None
        assert loaded.failure_kind is FailureKind.CONFIGURATION

    async def test_history_maintenance(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("2", "GitHub", "https://github.com")
        orchestrator = _orchestrator(manager, history, FakeClassifier())

        assert await orchestrator.mark_all_organized() == 1
        assert (await orchestrator.execute_reorganization()).status is RunStatus.NOTHING_TO_DO
        assert await orchestrator.clear_history() == 1
        assert (await orchestrator.execute_reorganization()).bookmarks_moved == 1


@pytest.mark.asyncio
class TestProgress:
    async def test_phases_are_published_in_order(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("2", "GitHub", "https://github.com")
        store.add_bookmark("2", "GitHub", "https://github.com")
        seen: list[RunState] = []

        orchestrator = _orchestrator(manager, history, FakeClassifier())
        await orchestrator.execute_reorganization(on_progress=seen.append)

        phases = list(dict.fromkeys(state.phase for state in seen))
        assert phases == [
            RunPhase.REMOVING_DUPLICATES,
            RunPhase.SCANNING,
            RunPhase.BATCH_CLASSIFYING,
            RunPhase.RECONCILING,
            RunPhase.MUTATING,
            RunPhase.PRUNING,
            RunPhase.DONE,
        ]
        assert orchestrator.state.phase is RunPhase.DONE
        assert not orchestrator.state.active

    async def test_async_callbacks_and_move_ticks(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        for n in range(25):
            store.add_bookmark("2", f"Repo {n}", f"https://github.com/{n}")
        ticks: list[int] = []

        async def on_progress(state: RunState) -> None:
            if state.phase is RunPhase.MUTATING and state.current:
                ticks.append(state.current)

        await _orchestrator(manager, history, FakeClassifier()).execute_reorganization(
            on_progress=on_progress
        )
        assert ticks == [10, 20]

    async def test_failing_callback_does_not_abort_the_run(
        self, store: InMemoryBookmarkStore, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        store.add_bookmark("2", "GitHub", "https://github.com")

        def broken(_state: RunState) -> None:
            raise ValueError("ui went away")

        report = await _orchestrator(manager, history, FakeClassifier()).execute_reorganization(
            on_progress=broken
        )
        assert report.status is RunStatus.COMPLETED

    async def test_aborted_phase_on_failure(
        self, manager: BookmarkManager, history: HistoryTracker
    ) -> None:
        orchestrator = _orchestrator(manager, history, None)
        await orchestrator.execute_reorganization()
        assert orchestrator.state.phase is RunPhase.ABORTED
        assert orchestrator.state.message == MISSING_CLASSIFIER_MESSAGE


def test_batch_size_must_be_positive(manager: BookmarkManager, history: HistoryTracker) -> None:
    with pytest.raises(ValueError, match="batch_size"):
        _orchestrator(manager, history, FakeClassifier(), batch_size=0)
