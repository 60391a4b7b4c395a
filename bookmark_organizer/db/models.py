"""Peewee ORM models for the organizer's local state."""

from __future__ import annotations

import peewee
from playhouse.sqlite_ext import JSONField

from bookmark_organizer.core.time_utils import utc_now

# Initialised with the concrete database by ``DatabaseSessionManager``.
database_proxy: peewee.Database = peewee.DatabaseProxy()


class BaseModel(peewee.Model):
    class Meta:
        database = database_proxy
        legacy_table_names = False


class OrganizationHistory(BaseModel):
    """One row per bookmark the organizer has placed (or baselined)."""

    bookmark_id = peewee.TextField(primary_key=True)
    moved = peewee.BooleanField(default=True)
    category = peewee.TextField(null=True)
    moved_at = peewee.DateTimeField(default=utc_now)

    class Meta:
        table_name = "organization_history"


class ProtectedFolder(BaseModel):
    """Folders renamed from a platform-reserved name; never pruned."""

    folder_id = peewee.TextField(primary_key=True)
    title = peewee.TextField()
    reason = peewee.TextField(default="renamed_reserved")
    created_at = peewee.DateTimeField(default=utc_now)

    class Meta:
        table_name = "protected_folders"


class RunRecord(BaseModel):
    id = peewee.AutoField()
    correlation_id = peewee.TextField(null=True, index=True)
    kind = peewee.TextField(default="full")
    status = peewee.TextField()
    report = JSONField()
    created_at = peewee.DateTimeField(default=utc_now, index=True)

    class Meta:
        table_name = "run_records"


ALL_MODELS: tuple[type[BaseModel], ...] = (OrganizationHistory, ProtectedFolder, RunRecord)
