"""Command-line front end operating on a Chromium ``Bookmarks`` file.

Close the browser before running a mutating command; it rewrites the file
from memory on exit.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from contextlib import AsyncExitStack
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from bookmark_organizer.adapters.bookmarks.bookmark_manager import BookmarkManager
from bookmark_organizer.adapters.bookmarks.chromium_store import ChromiumBookmarksFileStore
from bookmark_organizer.adapters.llm.factory import LLMClientFactory
from bookmark_organizer.config import AppConfig, load_config
from bookmark_organizer.core.logging_utils import setup_json_logging
from bookmark_organizer.db.session import DatabaseSessionManager
from bookmark_organizer.exceptions import (
    BookmarkStoreError,
    ConfigurationError,
    ReorganizationInProgressError,
)
from bookmark_organizer.infrastructure.persistence.sqlite.repositories import (
    SqliteHistoryRepositoryAdapter,
    SqliteRunStateRepositoryAdapter,
)
from bookmark_organizer.models.report import OutcomeReport, RunStatus
from bookmark_organizer.services.classifier import ClassifierClient
from bookmark_organizer.services.history_tracker import HistoryTracker
from bookmark_organizer.services.reorganization import ReorganizationOrchestrator

if TYPE_CHECKING:
    from bookmark_organizer.models.bookmarks import FolderSummary
    from bookmark_organizer.services.reorganization import RunState

logger = logging.getLogger(__name__)

__all__ = ["main"]

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FAILED = 2
EXIT_BUSY = 3

_STATUS_EXIT_CODES = {
    RunStatus.COMPLETED: EXIT_OK,
    RunStatus.NOTHING_TO_DO: EXIT_OK,
    RunStatus.PARTIAL: EXIT_PARTIAL,
    RunStatus.FAILED: EXIT_FAILED,
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="bookmark-organizer",
        description="Reorganize browser bookmarks into category folders using an LLM.",
        allow_abbrev=False,
    )
    parser.add_argument(
        "--bookmarks",
        type=Path,
        help="Path to the Chromium 'Bookmarks' file (defaults to BOOKMARKS_FILE).",
    )
    parser.add_argument("--db", type=Path, help="Override the state database path (DB_PATH).")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")

    commands = parser.add_subparsers(dest="command", required=True)

    preview = commands.add_parser("preview", help="Estimate a run without changing anything.")
    preview.add_argument("--exclude", nargs="*", default=[], metavar="FOLDER_ID")

    run = commands.add_parser("run", help="Reorganize every bookmark.")
    run.add_argument("--exclude", nargs="*", default=[], metavar="FOLDER_ID")
    run.add_argument("--json-output", type=Path, help="Also write the report to this file.")

    run_folders = commands.add_parser("run-folders", help="Reorganize selected folders only.")
    run_folders.add_argument("folder_ids", nargs="+", metavar="FOLDER_ID")
    run_folders.add_argument("--json-output", type=Path, help="Also write the report to this file.")

    commands.add_parser("clear-history", help="Forget which bookmarks were already organized.")
    commands.add_parser("mark-all", help="Mark every bookmark as organized without moving it.")
    commands.add_parser("last-report", help="Print the report of the most recent run.")
    commands.add_parser("tree", help="Print the folder tree with bookmark counts.")
    return parser.parse_args(argv)


def _prepare_config(args: argparse.Namespace) -> AppConfig:
    """Load configuration, applying CLI overrides."""
    try:
        cfg = load_config()
    except RuntimeError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    runtime = cfg.runtime
    if args.db:
        runtime = runtime.model_copy(update={"db_path": str(args.db.expanduser())})
    if args.bookmarks:
        runtime = runtime.model_copy(update={"bookmarks_file": str(args.bookmarks.expanduser())})
    if args.debug:
        runtime = runtime.model_copy(update={"log_level": "DEBUG"})
    return replace(cfg, runtime=runtime)


def _log_progress(state: RunState) -> None:
    logger.info(
        "progress",
        extra={
            "phase": state.phase.value,
            "current": state.current,
            "total": state.total,
            "status_message": state.message,
        },
    )


def _print_report(report: OutcomeReport) -> None:
    print(f"Status: {report.status.value}")
    if report.failure_kind:
        print(f"Failure: {report.failure_kind.value}")
    print(f"Bookmarks moved:       {report.bookmarks_moved}")
    print(f"Folders created:       {report.folders_created}")
    print(f"Duplicates removed:    {report.duplicates_removed}")
    print(f"Empty folders removed: {report.empty_folders_removed}")
    print(f"Skipped (history):     {report.skipped}")
    if report.token_usage.total_tokens:
        print(f"Tokens used:           {report.token_usage.total_tokens}")
    if report.cost_usd is not None:
        print(f"Estimated cost (USD):  {report.cost_usd:.4f}")
    for move in report.moves:
        print(f"  {move.title or move.url}: {move.from_folder} -> {move.to_folder}")
    if report.empty_folder_names:
        print("Removed empty folders: " + ", ".join(report.empty_folder_names))
    for error in report.errors:
        print(f"! {error}")


def _print_tree(summaries: list[FolderSummary], depth: int = 0) -> None:
    for summary in summaries:
        indent = "  " * depth
        print(
            f"{indent}{summary.title} [{summary.id}] "
            f"({summary.direct_bookmarks} direct, {summary.total_bookmarks} total)"
        )
        _print_tree(summary.children, depth + 1)


def _write_report(report: OutcomeReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    logger.info("report_written", extra={"path": str(path)})


async def run_cli(args: argparse.Namespace, cfg: AppConfig) -> int:
    """Execute one subcommand and return the process exit code."""
    if not cfg.runtime.bookmarks_file:
        print("No bookmarks file given; use --bookmarks or set BOOKMARKS_FILE.")
        return EXIT_FAILED

    try:
        store = ChromiumBookmarksFileStore(cfg.runtime.bookmarks_file)
    except BookmarkStoreError as exc:
        print(exc.message)
        return EXIT_FAILED

    manager = BookmarkManager(store, target_parent_id=cfg.organization.target_parent_id)
    session = DatabaseSessionManager(cfg.runtime.db_path)
    session.migrate()
    history = HistoryTracker(SqliteHistoryRepositoryAdapter(session))
    run_state = SqliteRunStateRepositoryAdapter(session)

    async with AsyncExitStack() as stack:
        stack.callback(session.close)
        classifier: ClassifierClient | None = None
        if args.command in ("run", "run-folders"):
            try:
                llm_client = LLMClientFactory.create(cfg.llm, cfg.performance, cfg.runtime)
            except ConfigurationError as exc:
                # The run still goes ahead so its failed report is persisted.
                print(f"Configuration error: {exc.message}")
                logger.error("llm_client_unavailable", extra={"error": exc.message})
            else:
                classifier = ClassifierClient.from_config(llm_client, cfg)
                stack.push_async_callback(classifier.aclose)

        orchestrator = ReorganizationOrchestrator.from_config(
            manager, history, cfg, classifier=classifier, run_state_repository=run_state
        )

        if args.command == "preview":
            try:
                preview = await orchestrator.generate_preview(args.exclude)
            except ConfigurationError as exc:
                print(f"Configuration error: {exc.message}")
                return EXIT_FAILED
            print(json.dumps(preview.model_dump(mode="json"), indent=2, ensure_ascii=False))
            return EXIT_OK

        if args.command in ("run", "run-folders"):
            try:
                if args.command == "run":
                    report = await orchestrator.execute_reorganization(args.exclude, _log_progress)
                else:
                    report = await orchestrator.execute_reorganization_for_folders(
                        args.folder_ids, _log_progress
                    )
            except ReorganizationInProgressError as exc:
                print(exc.message)
                return EXIT_BUSY
            _print_report(report)
            if args.json_output:
                _write_report(report, args.json_output)
            return _STATUS_EXIT_CODES[report.status]

        if args.command == "clear-history":
            removed = await orchestrator.clear_history()
            print(f"Cleared {removed} history entries.")
            return EXIT_OK

        if args.command == "mark-all":
            count = await orchestrator.mark_all_organized()
            print(f"Marked {count} bookmarks as organized.")
            return EXIT_OK

        if args.command == "last-report":
            last = await orchestrator.get_last_report()
            if last is None:
                print("No reorganization has been run yet.")
                return EXIT_OK
            _print_report(last)
            return EXIT_OK

        _print_tree(await manager.get_bookmark_tree_with_counts())
        return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``bookmark-organizer`` console script."""
    args = parse_args(argv)
    cfg = _prepare_config(args)
    setup_json_logging(cfg.runtime.log_level, log_file=cfg.runtime.log_file)
    try:
        return asyncio.run(run_cli(args, cfg))
    except KeyboardInterrupt:  # pragma: no cover - user cancelled
        return EXIT_FAILED
    except Exception as exc:
        logger.exception("cli_failed", exc_info=exc)
        return EXIT_FAILED


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
