from __future__ import annotations

from ._validators import validate_api_key_format, validate_model_name
from .llm import DEFAULT_MODELS, VALID_PROVIDERS, LLMConfig
from .organization import DEFAULT_CATEGORIES, HistoryPolicy, OrganizationConfig
from .settings import AppConfig, PerformanceConfig, RuntimeConfig, Settings, load_config

__all__ = [
    "DEFAULT_CATEGORIES",
    "DEFAULT_MODELS",
    "VALID_PROVIDERS",
    "AppConfig",
    "HistoryPolicy",
    "LLMConfig",
    "OrganizationConfig",
    "PerformanceConfig",
    "RuntimeConfig",
    "Settings",
    "load_config",
    "validate_api_key_format",
    "validate_model_name",
]
