"""SQLite implementation of run-scoped state: protected folders and reports."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from bookmark_organizer.db.models import ProtectedFolder, RunRecord
from bookmark_organizer.infrastructure.persistence.sqlite.base import SqliteBaseRepository

# Older reports are dropped once this many are stored.
MAX_STORED_REPORTS = 20


class SqliteRunStateRepositoryAdapter(SqliteBaseRepository):
    async def async_get_protected_folder_ids(self) -> set[str]:
        def _get() -> set[str]:
            return {row.folder_id for row in ProtectedFolder.select(ProtectedFolder.folder_id)}

        return await self._execute(_get, operation_name="get_protected_folder_ids")

    async def async_add_protected_folders(
        self, folders: Iterable[tuple[str, str]], reason: str = "renamed_reserved"
    ) -> int:
        """Persist ``(folder_id, title)`` pairs; existing ids are overwritten."""
        rows = [
            {"folder_id": folder_id, "title": title, "reason": reason}
            for folder_id, title in folders
        ]

        def _insert() -> int:
            if rows:
                ProtectedFolder.insert_many(rows).on_conflict_replace().execute()
            return len(rows)

        return await self._execute(_insert, operation_name="add_protected_folders")

    async def async_save_report(
        self,
        report: dict[str, Any],
        *,
        correlation_id: str | None,
        kind: str,
        status: str,
    ) -> int:
        def _save() -> int:
            record = RunRecord.create(
                correlation_id=correlation_id, kind=kind, status=status, report=report
            )
            stale = (
                RunRecord.select(RunRecord.id)
                .order_by(RunRecord.id.desc())
                .offset(MAX_STORED_REPORTS)
            )
            RunRecord.delete().where(RunRecord.id.in_(stale)).execute()
            return record.id

        return await self._execute(_save, operation_name="save_run_report")

    async def async_get_last_report(self) -> dict[str, Any] | None:
        def _get() -> dict[str, Any] | None:
            record = RunRecord.select().order_by(RunRecord.id.desc()).first()
            return record.report if record else None

        return await self._execute(_get, operation_name="get_last_run_report")
