from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ._validators import _dedupe_preserving_order, _parse_csv

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Shopping & E-commerce",
    "Travel & Transportation",
    "News & Media",
    "Social Networks",
    "Entertainment & Streaming",
    "Finance & Banking",
    "Technology & Software",
    "Development & Programming",
    "Design & Creative",
    "Productivity & Tools",
    "Communication & Email",
    "Education & Learning",
    "Health & Wellness",
    "Food & Dining",
    "Real Estate & Housing",
    "Jobs & Career",
    "Business & Marketing",
    "Sports & Recreation",
    "Music & Audio",
    "Photography & Video",
    "Gaming",
    "Science & Research",
    "Government & Legal",
    "Home & Lifestyle",
    "Automotive",
)


class HistoryPolicy(str, Enum):
    """Whether previously placed bookmarks are skipped on later runs."""

    ALWAYS = "always"
    NEVER = "never"
    ON_FULL_SCAN_ONLY = "on_full_scan_only"


_POLICY_ALIASES = {
    "organizeallonly": HistoryPolicy.ON_FULL_SCAN_ONLY,
    "onfullscanonly": HistoryPolicy.ON_FULL_SCAN_ONLY,
    "full_scan_only": HistoryPolicy.ON_FULL_SCAN_ONLY,
    "true": HistoryPolicy.ALWAYS,
    "false": HistoryPolicy.NEVER,
}


class OrganizationConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    categories: tuple[str, ...] = Field(
        default=DEFAULT_CATEGORIES, validation_alias="CATEGORIES"
    )
    remove_duplicates: bool = Field(default=True, validation_alias="REMOVE_DUPLICATES")
    remove_empty_folders: bool = Field(default=True, validation_alias="REMOVE_EMPTY_FOLDERS")
    ignore_folders: tuple[str, ...] = Field(default=(), validation_alias="IGNORE_FOLDERS")
    excluded_system_folder_ids: tuple[str, ...] = Field(
        default=("3",), validation_alias="EXCLUDED_SYSTEM_FOLDER_IDS"
    )
    organize_saved_tabs: bool = Field(default=False, validation_alias="ORGANIZE_SAVED_TABS")
    respect_organization_history: HistoryPolicy = Field(
        default=HistoryPolicy.ALWAYS, validation_alias="RESPECT_ORGANIZATION_HISTORY"
    )
    use_existing_folders: bool = Field(default=False, validation_alias="USE_EXISTING_FOLDERS")
    allow_keep_current: bool = Field(default=True, validation_alias="ALLOW_KEEP_CURRENT")
    rename_reserved_folders: bool = Field(
        default=True, validation_alias="RENAME_RESERVED_FOLDERS"
    )
    target_parent_id: str = Field(default="1", validation_alias="TARGET_PARENT_ID")

    @field_validator("categories", mode="before")
    @classmethod
    def _parse_categories(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return DEFAULT_CATEGORIES
        categories = _dedupe_preserving_order(_parse_csv(value))
        for category in categories:
            if len(category) > 100:
                msg = f"Category name too long: {category[:30]}..."
                raise ValueError(msg)
        return categories

    @field_validator("ignore_folders", "excluded_system_folder_ids", mode="before")
    @classmethod
    def _parse_lists(cls, value: Any) -> tuple[str, ...]:
        return _dedupe_preserving_order(_parse_csv(value))

    @field_validator("respect_organization_history", mode="before")
    @classmethod
    def _parse_policy(cls, value: Any) -> HistoryPolicy:
        if isinstance(value, HistoryPolicy):
            return value
        raw = str(value or "always").strip()
        alias = _POLICY_ALIASES.get(raw.lower())
        if alias is not None:
            return alias
        try:
            return HistoryPolicy(raw.lower())
        except ValueError as exc:
            valid = sorted(p.value for p in HistoryPolicy)
            msg = f"Invalid history policy: {raw}. Must be one of {valid}"
            raise ValueError(msg) from exc

    @field_validator("target_parent_id", mode="before")
    @classmethod
    def _validate_parent(cls, value: Any) -> str:
        parent = str(value or "1").strip()
        if parent == "0":
            msg = "Category folders cannot be created directly under the tree root"
            raise ValueError(msg)
        return parent
