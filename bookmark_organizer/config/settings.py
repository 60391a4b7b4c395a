from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .llm import LLMConfig
from .organization import OrganizationConfig

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = str(Path("~/.bookmark_organizer/state.db").expanduser())


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    db_path: str = Field(default=DEFAULT_DB_PATH, validation_alias="DB_PATH")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    bookmarks_file: str | None = Field(default=None, validation_alias="BOOKMARKS_FILE")
    debug_payloads: bool = Field(default=False, validation_alias="DEBUG_PAYLOADS")
    log_truncate_length: int = Field(default=1000, validation_alias="LOG_TRUNCATE_LENGTH")

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> str:
        log_level = str(value or "INFO").upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if log_level not in valid_levels:
            msg = f"Invalid log level: {value}. Must be one of {valid_levels}"
            raise ValueError(msg)
        return log_level

    @field_validator("db_path", "bookmarks_file", "log_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any, info: ValidationInfo) -> str | None:
        if value in (None, ""):
            return cls.model_fields[info.field_name].default
        raw = str(value).strip()
        if raw == ":memory:":
            return raw
        return str(Path(raw).expanduser())


class PerformanceConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    batch_size: int = Field(default=50, validation_alias="BATCH_SIZE")
    api_timeout_sec: int = Field(
        default=180, validation_alias=AliasChoices("API_TIMEOUT_SEC", "REQUEST_TIMEOUT_SEC")
    )
    max_response_size_mb: int = Field(default=10, validation_alias="MAX_RESPONSE_SIZE_MB")
    retry_attempts: int = Field(default=5, validation_alias="RETRY_ATTEMPTS")
    backoff_base_sec: float = Field(default=2.0, validation_alias="BACKOFF_BASE_SEC")
    backoff_max_sec: float = Field(default=30.0, validation_alias="BACKOFF_MAX_SEC")
    rate_limit_max_wait_sec: float = Field(
        default=300.0, validation_alias="RATE_LIMIT_MAX_WAIT_SEC"
    )

    @field_validator("batch_size", mode="before")
    @classmethod
    def _validate_batch_size(cls, value: Any) -> int:
        size = _parse_int(value, default=50, name="Batch size")
        if not 1 <= size <= 500:
            msg = "Batch size must be between 1 and 500"
            raise ValueError(msg)
        return size

    @field_validator("api_timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> int:
        timeout = _parse_int(value, default=180, name="Timeout")
        if timeout <= 0:
            msg = "Timeout must be positive"
            raise ValueError(msg)
        if timeout > 3600:
            msg = "Timeout too large (max 3600 seconds)"
            raise ValueError(msg)
        return timeout

    @field_validator("max_response_size_mb", mode="before")
    @classmethod
    def _validate_response_size(cls, value: Any) -> int:
        size = _parse_int(value, default=10, name="Max response size")
        if not 1 <= size <= 100:
            msg = "Max response size must be between 1 and 100 MB"
            raise ValueError(msg)
        return size

    @field_validator("retry_attempts", mode="before")
    @classmethod
    def _validate_retries(cls, value: Any) -> int:
        retries = _parse_int(value, default=5, name="Retry attempts")
        if not 0 <= retries <= 10:
            msg = "Retry attempts must be between 0 and 10"
            raise ValueError(msg)
        return retries

    @model_validator(mode="after")
    def _validate_backoff(self) -> PerformanceConfig:
        if self.backoff_base_sec < 0 or self.backoff_max_sec < 0:
            msg = "Backoff delays must not be negative"
            raise ValueError(msg)
        if self.rate_limit_max_wait_sec <= 0:
            msg = "Rate limit max wait must be positive"
            raise ValueError(msg)
        return self


def _parse_int(value: Any, *, default: int, name: str) -> int:
    if value in (None, ""):
        return default
    try:
        return int(str(value))
    except ValueError as exc:
        msg = f"{name} must be a valid integer"
        raise ValueError(msg) from exc


@dataclass(frozen=True)
class AppConfig:
    llm: LLMConfig
    performance: PerformanceConfig
    organization: OrganizationConfig
    runtime: RuntimeConfig


class Settings(BaseSettings):
    """Application settings loaded automatically from environment variables.

    Nested models are populated by matching ``validation_alias`` on each field.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    organization: OrganizationConfig = Field(default_factory=OrganizationConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    @model_validator(mode="before")
    @classmethod
    def _build_nested_from_env(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Build nested config objects from flat environment variables.

        Constructor arguments take precedence over ``os.environ``.
        """
        if not isinstance(data, dict):
            return data

        result = dict(data)
        merged_source = {**dict(os.environ), **data}

        for field_name, field_info in cls.model_fields.items():
            annotation = field_info.annotation
            if not isinstance(annotation, type) or not issubclass(annotation, BaseModel):
                continue

            nested_data: dict[str, Any] = {}
            for nested_field_name, nested_field in annotation.model_fields.items():
                env_value = cls._resolve_env_value(merged_source, nested_field)
                if env_value is not None:
                    nested_data[nested_field_name] = env_value

            if nested_data:
                if field_name in result and isinstance(result[field_name], dict):
                    result[field_name] = {**nested_data, **result[field_name]}
                else:
                    result[field_name] = nested_data

        return result

    @staticmethod
    def _resolve_env_value(data: dict[str, Any], field: Any) -> Any | None:
        """Resolve an environment value for a field using its aliases."""
        aliases: list[str] = []
        alias = field.validation_alias
        if isinstance(alias, AliasChoices):
            aliases.extend(choice for choice in alias.choices if isinstance(choice, str))
        elif isinstance(alias, str):
            aliases.append(alias)

        for name in aliases:
            if name in data:
                return data[name]
        return None

    def as_app_config(self) -> AppConfig:
        return AppConfig(
            llm=self.llm,
            performance=self.performance,
            organization=self.organization,
            runtime=self.runtime,
        )


def load_config(**overrides: Any) -> AppConfig:
    """Load configuration from environment variables and an optional ``.env`` file.

    Keyword overrides use section names (``llm``, ``performance``,
    ``organization``, ``runtime``) mapping to dicts of field values.

    Raises:
        RuntimeError: If configuration validation fails.
    """
    try:
        settings = Settings(**overrides)
    except (ValidationError, ValueError) as exc:
        msg = f"Configuration validation failed: {exc}"
        raise RuntimeError(msg) from exc

    config = settings.as_app_config()
    logger.debug(
        "config_loaded",
        extra={
            "provider": config.llm.provider,
            "model": config.llm.model,
            "batch_size": config.performance.batch_size,
            "categories": len(config.organization.categories),
            "history_policy": config.organization.respect_organization_history.value,
        },
    )
    return config
