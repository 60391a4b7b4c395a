"""SQLite implementation of the organization history store."""

from __future__ import annotations

from collections.abc import Iterable

import peewee

from bookmark_organizer.core.time_utils import utc_now
from bookmark_organizer.db.models import OrganizationHistory
from bookmark_organizer.infrastructure.persistence.sqlite.base import SqliteBaseRepository

_INSERT_CHUNK = 200


class SqliteHistoryRepositoryAdapter(SqliteBaseRepository):
    """Key-value history keyed by bookmark id; last write wins."""

    async def async_is_moved(self, bookmark_id: str) -> bool:
        def _get() -> bool:
            return (
                OrganizationHistory.select()
                .where(
                    (OrganizationHistory.bookmark_id == bookmark_id)
                    & (OrganizationHistory.moved == True)  # noqa: E712
                )
                .exists()
            )

        return await self._execute(_get, operation_name="history_is_moved")

    async def async_get_moved_ids(self) -> set[str]:
        def _get() -> set[str]:
            query = OrganizationHistory.select(OrganizationHistory.bookmark_id).where(
                OrganizationHistory.moved == True  # noqa: E712
            )
            return {row.bookmark_id for row in query}

        return await self._execute(_get, operation_name="history_get_moved_ids")

    async def async_mark_moved(self, bookmark_id: str, category: str | None = None) -> None:
        def _upsert() -> None:
            OrganizationHistory.insert(
                bookmark_id=bookmark_id, moved=True, category=category, moved_at=utc_now()
            ).on_conflict_replace().execute()

        await self._execute(_upsert, operation_name="history_mark_moved")

    async def async_mark_many(
        self, bookmark_ids: Iterable[str], category: str | None = None
    ) -> int:
        ids = list(dict.fromkeys(bookmark_ids))

        def _bulk() -> int:
            now = utc_now()
            rows = [
                {"bookmark_id": bid, "moved": True, "category": category, "moved_at": now}
                for bid in ids
            ]
            with OrganizationHistory._meta.database.atomic():
                for batch in peewee.chunked(rows, _INSERT_CHUNK):
                    OrganizationHistory.insert_many(batch).on_conflict_replace().execute()
            return len(rows)

        return await self._execute(_bulk, operation_name="history_mark_many")

    async def async_get_category(self, bookmark_id: str) -> str | None:
        def _get() -> str | None:
            row = OrganizationHistory.get_or_none(OrganizationHistory.bookmark_id == bookmark_id)
            return row.category if row else None

        return await self._execute(_get, operation_name="history_get_category")

    async def async_clear(self) -> int:
        def _delete() -> int:
            return OrganizationHistory.delete().execute()

        return await self._execute(_delete, operation_name="history_clear")

    async def async_count(self) -> int:
        def _count() -> int:
            return OrganizationHistory.select().count()

        return await self._execute(_count, operation_name="history_count")
