"""SQLite session management for the organizer's state database."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import peewee
from playhouse.sqlite_ext import SqliteExtDatabase

from bookmark_organizer.db.models import ALL_MODELS, database_proxy

DB_OPERATION_TIMEOUT = 30.0
DB_MAX_RETRIES = 3


@dataclass
class DatabaseSessionManager:
    """Owns the peewee database and runs blocking ORM work off the event loop.

    Attributes:
        path: Path to the SQLite file, or ":memory:" for an in-memory database
        operation_timeout: Default timeout for one operation in seconds
        max_retries: Retries when SQLite reports the database as locked/busy
    """

    path: str
    _logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _database: SqliteExtDatabase = field(init=False)
    _lock: asyncio.Lock = field(init=False)

    operation_timeout: float = field(default=DB_OPERATION_TIMEOUT)
    max_retries: int = field(default=DB_MAX_RETRIES)

    def __post_init__(self) -> None:
        in_memory = self.path == ":memory:"
        if not in_memory:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        # An in-memory database lives only as long as its single connection,
        # so it is shared across worker threads and never closed between calls.
        self._database = SqliteExtDatabase(
            self.path,
            pragmas={"journal_mode": "wal", "synchronous": "normal", "foreign_keys": 1},
            check_same_thread=False,
            thread_safe=not in_memory,
        )
        database_proxy.initialize(self._database)
        self._lock = asyncio.Lock()

    @property
    def database(self) -> SqliteExtDatabase:
        return self._database

    @property
    def in_memory(self) -> bool:
        return self.path == ":memory:"

    def _run(self, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        if self.in_memory:
            self._database.connect(reuse_if_open=True)
            return operation(*args, **kwargs)
        with self._database.connection_context():
            return operation(*args, **kwargs)

    def migrate(self) -> None:
        """Create tables that do not exist yet."""
        self._run(self._database.create_tables, list(ALL_MODELS), safe=True)
        self._logger.info("db_migrated", extra={"path": self._mask_path(self.path)})

    def close(self) -> None:
        if not self._database.is_closed():
            self._database.close()

    async def _safe_db_operation(
        self,
        operation: Callable[..., Any],
        *args: Any,
        timeout: float | None = None,
        operation_name: str = "database_operation",
        **kwargs: Any,
    ) -> Any:
        """Run ``operation`` in a worker thread with a timeout and lock retries.

        Raises:
            TimeoutError: If the operation does not finish within ``timeout``
            peewee.OperationalError: If the database stays locked after retries
        """
        if timeout is None:
            timeout = self.operation_timeout

        retries = 0
        while True:
            try:
                async with self._lock:
                    return await asyncio.wait_for(
                        asyncio.to_thread(self._run, operation, *args, **kwargs),
                        timeout=timeout,
                    )
            except TimeoutError:
                self._logger.exception(
                    "db_operation_timeout",
                    extra={"operation": operation_name, "timeout": timeout},
                )
                raise
            except peewee.OperationalError as e:
                error_msg = str(e).lower()
                if ("locked" in error_msg or "busy" in error_msg) and retries < self.max_retries:
                    retries += 1
                    wait_time = 0.1 * (2**retries)
                    self._logger.warning(
                        "db_locked_retrying",
                        extra={
                            "operation": operation_name,
                            "retry": retries,
                            "wait_time": wait_time,
                            "error": str(e),
                        },
                    )
                    await asyncio.sleep(wait_time)
                    continue
                self._logger.exception(
                    "db_operational_error",
                    extra={"operation": operation_name, "retries": retries, "error": str(e)},
                )
                raise

    @staticmethod
    def _mask_path(path: str) -> str:
        if path == ":memory:":
            return path
        return Path(path).name
