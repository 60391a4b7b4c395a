from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ._validators import validate_model_name

VALID_PROVIDERS = frozenset({"openai", "claude", "openrouter", "grok", "custom"})
PROVIDER_ALIASES = {"anthropic": "claude", "xai": "grok"}

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "claude": "claude-3-haiku-20240307",
    "grok": "grok-beta",
    "openrouter": "meta-llama/llama-3.3-70b-instruct:free",
    "custom": "gpt-3.5-turbo",
}


class LLMConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    provider: str = Field(default="openrouter", validation_alias="LLM_PROVIDER")
    api_key: str = Field(
        default="", validation_alias=AliasChoices("LLM_API_KEY", "OPENROUTER_API_KEY")
    )
    model: str = Field(default="", validation_alias="LLM_MODEL")
    custom_endpoint: str | None = Field(default=None, validation_alias="LLM_CUSTOM_ENDPOINT")
    max_tokens: int = Field(default=4096, validation_alias="LLM_MAX_TOKENS")
    temperature: float = Field(default=0.2, validation_alias="LLM_TEMPERATURE")
    http_referer: str | None = Field(default=None, validation_alias="LLM_HTTP_REFERER")
    x_title: str | None = Field(default="Bookmark Organizer", validation_alias="LLM_X_TITLE")

    @field_validator("provider", mode="before")
    @classmethod
    def _validate_provider(cls, value: Any) -> str:
        provider = str(value or "openrouter").lower().strip()
        provider = PROVIDER_ALIASES.get(provider, provider)
        if provider not in VALID_PROVIDERS:
            msg = f"Invalid LLM provider: {provider}. Must be one of {sorted(VALID_PROVIDERS)}"
            raise ValueError(msg)
        return provider

    @field_validator("api_key", mode="before")
    @classmethod
    def _strip_api_key(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("custom_endpoint", mode="before")
    @classmethod
    def _validate_endpoint(cls, value: Any) -> str | None:
        if value in (None, ""):
            return None
        endpoint = str(value).strip().rstrip("/")
        if not endpoint.startswith(("http://", "https://")):
            msg = "Custom endpoint must be an http(s) URL"
            raise ValueError(msg)
        return endpoint

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _validate_max_tokens(cls, value: Any) -> int:
        if value in (None, ""):
            return 4096
        try:
            tokens = int(str(value))
        except ValueError as exc:
            msg = "Max tokens must be a valid integer"
            raise ValueError(msg) from exc
        if tokens <= 0:
            msg = "Max tokens must be positive"
            raise ValueError(msg)
        if tokens > 100000:
            msg = "Max tokens too large"
            raise ValueError(msg)
        return tokens

    @field_validator("temperature", mode="before")
    @classmethod
    def _validate_temperature(cls, value: Any) -> float:
        if value in (None, ""):
            return 0.2
        try:
            temperature = float(str(value))
        except ValueError as exc:
            msg = "Temperature must be a valid number"
            raise ValueError(msg) from exc
        if not 0.0 <= temperature <= 2.0:
            msg = "Temperature must be between 0 and 2"
            raise ValueError(msg)
        return temperature

    @model_validator(mode="after")
    def _fill_default_model(self) -> LLMConfig:
        model = self.model or DEFAULT_MODELS[self.provider]
        object.__setattr__(self, "model", validate_model_name(model))
        return self
