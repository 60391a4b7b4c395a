"""Tests for the command-line front end."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from bookmark_organizer.cli.organize import (
    EXIT_FAILED,
    EXIT_OK,
    _prepare_config,
    parse_args,
    run_cli,
)
from bookmark_organizer.config import AppConfig
from bookmark_organizer.models.llm.llm_models import LLMCallResult, TokenUsage


def _bookmarks_file(tmp_path: Path) -> Path:
    document = {
        "checksum": "",
        "roots": {
            "bookmark_bar": {"id": "1", "name": "Bookmarks bar", "type": "folder", "children": []},
            "other": {
                "id": "2",
                "name": "Other bookmarks",
                "type": "folder",
                "children": [
                    {"id": "5", "name": "GitHub", "type": "url", "url": "https://github.com"},
                    {"id": "6", "name": "Python", "type": "url", "url": "https://python.org"},
                ],
            },
            "synced": {"id": "3", "name": "Mobile bookmarks", "type": "folder", "children": []},
        },
        "version": 1,
    }
    path = tmp_path / "Bookmarks"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def _fake_llm() -> MagicMock:
    reply = {"suggestions": [{"i": 1, "f": "Tech"}, {"i": 2, "f": "Tech"}]}
    llm = MagicMock()
    llm.chat = AsyncMock(
        return_value=LLMCallResult(
            status="ok",
            response_text=json.dumps(reply),
            usage=TokenUsage.from_counts(50, 5),
            status_code=200,
        )
    )
    llm.aclose = AsyncMock()
    return llm


def _args(tmp_path: Path, *argv: str) -> tuple[argparse.Namespace, AppConfig]:
    bookmarks = _bookmarks_file(tmp_path)
    args = parse_args(["--bookmarks", str(bookmarks), "--db", str(tmp_path / "state.db"), *argv])
    return args, _prepare_config(args)


class TestParseArgs:
    def test_subcommand_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([])

    def test_run_folders_needs_ids(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["run-folders"])

    def test_overrides_reach_runtime_config(self, tmp_path: Path) -> None:
        args = parse_args(["--db", str(tmp_path / "x.db"), "--debug", "tree"])
        cfg = _prepare_config(args)
        assert cfg.runtime.db_path == str(tmp_path / "x.db")
        assert cfg.runtime.log_level == "DEBUG"

    def test_invalid_environment_exits(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BATCH_SIZE", "0")
        with pytest.raises(SystemExit, match="Configuration error"):
            _prepare_config(parse_args(["tree"]))


@pytest.mark.asyncio
class TestRunCli:
    async def test_missing_bookmarks_file(self, capsys: pytest.CaptureFixture[str]) -> None:
        args = parse_args(["tree"])
        assert await run_cli(args, _prepare_config(args)) == EXIT_FAILED
        assert "BOOKMARKS_FILE" in capsys.readouterr().out

    async def test_tree(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        args, cfg = _args(tmp_path, "tree")
        assert await run_cli(args, cfg) == EXIT_OK
        out = capsys.readouterr().out
        assert "Other bookmarks [2] (2 direct, 2 total)" in out

    async def test_preview(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        args, cfg = _args(tmp_path, "preview")
        assert await run_cli(args, cfg) == EXIT_OK
        preview = json.loads(capsys.readouterr().out)
        assert preview["total_candidates"] == 2
        assert preview["estimated_batches"] == 1

    async def test_run_without_api_key(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args, cfg = _args(tmp_path, "run")
        assert await run_cli(args, cfg) == EXIT_FAILED
        out = capsys.readouterr().out
        assert "Configuration error" in out
        assert "Failure: configuration" in out

        # The failed run replaces any earlier report.
        assert await run_cli(parse_args(["last-report"]), cfg) == EXIT_OK
        last = capsys.readouterr().out
        assert "Status: failed" in last
        assert "Failure: configuration" in last
        assert "LLM_API_KEY" in last

        saved = json.loads(Path(cfg.runtime.bookmarks_file).read_text(encoding="utf-8"))
        assert [c["id"] for c in saved["roots"]["other"]["children"]] == ["5", "6"]

    async def test_run_moves_bookmarks_and_writes_report(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CATEGORIES", "Tech,News")
        report_path = tmp_path / "out" / "report.json"
        args, cfg = _args(tmp_path, "run", "--json-output", str(report_path))
        llm = _fake_llm()

        with patch("bookmark_organizer.cli.organize.LLMClientFactory.create", return_value=llm):
            assert await run_cli(args, cfg) == EXIT_OK

        report = json.loads(report_path.read_text(encoding="utf-8"))
        assert report["status"] == "completed"
        assert len(report["moves"]) == 2
        saved = json.loads(Path(cfg.runtime.bookmarks_file).read_text(encoding="utf-8"))
        tech = saved["roots"]["bookmark_bar"]["children"][0]
        assert tech["name"] == "Tech"
        assert [c["id"] for c in tech["children"]] == ["5", "6"]
        llm.aclose.assert_awaited_once()

    async def test_history_commands(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args, cfg = _args(tmp_path, "mark-all")
        assert await run_cli(args, cfg) == EXIT_OK
        assert "Marked 2 bookmarks" in capsys.readouterr().out

        args = parse_args(["clear-history"])
        assert await run_cli(args, cfg) == EXIT_OK
        assert "Cleared 2 history entries" in capsys.readouterr().out

    async def test_last_report_when_empty(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args, cfg = _args(tmp_path, "last-report")
        assert await run_cli(args, cfg) == EXIT_OK
        assert "No reorganization has been run yet." in capsys.readouterr().out
