from bookmark_organizer.infrastructure.persistence.sqlite.repositories.history_repository import (
    SqliteHistoryRepositoryAdapter,
)
from bookmark_organizer.infrastructure.persistence.sqlite.repositories.run_state_repository import (
    SqliteRunStateRepositoryAdapter,
)

__all__ = ["SqliteHistoryRepositoryAdapter", "SqliteRunStateRepositoryAdapter"]
