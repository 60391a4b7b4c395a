"""LLM client factory.

Selects the provider's request builder and endpoint once, at construction,
so nothing downstream branches on the provider per call.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from bookmark_organizer.adapters.llm.anthropic.request_builder import AnthropicRequestBuilder
from bookmark_organizer.adapters.llm.client import ChatClient
from bookmark_organizer.adapters.llm.openai.request_builder import OpenAIRequestBuilder
from bookmark_organizer.config._validators import validate_api_key_format
from bookmark_organizer.config.llm import VALID_PROVIDERS
from bookmark_organizer.exceptions import ConfigurationError

if TYPE_CHECKING:
    import httpx

    from bookmark_organizer.adapters.llm.protocol import RequestBuilderProtocol
    from bookmark_organizer.config.llm import LLMConfig
    from bookmark_organizer.config.settings import PerformanceConfig, RuntimeConfig

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    OPENAI = "openai"
    CLAUDE = "claude"
    OPENROUTER = "openrouter"
    GROK = "grok"
    CUSTOM = "custom"


PROVIDER_ENDPOINTS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "https://api.openai.com/v1/chat/completions",
    ProviderKind.CLAUDE: "https://api.anthropic.com/v1/messages",
    ProviderKind.OPENROUTER: "https://openrouter.ai/api/v1/chat/completions",
    ProviderKind.GROK: "https://api.x.ai/v1/chat/completions",
}


def resolve_endpoint(kind: ProviderKind, custom_endpoint: str | None = None) -> str:
    """Return the chat endpoint URL for ``kind``.

    Custom endpoints are treated as an OpenAI-compatible base URL; the
    ``/chat/completions`` path is appended unless already present.
    """
    if kind is not ProviderKind.CUSTOM:
        return PROVIDER_ENDPOINTS[kind]
    if not custom_endpoint:
        msg = "LLM_CUSTOM_ENDPOINT is required when LLM_PROVIDER=custom"
        raise ConfigurationError(msg)
    base = custom_endpoint.rstrip("/")
    if base.endswith("/chat/completions"):
        return base
    return f"{base}/chat/completions"


class LLMClientFactory:
    """Factory for provider-specific chat clients."""

    @staticmethod
    def build_request_builder(config: LLMConfig) -> RequestBuilderProtocol:
        """Validate credentials and return the builder for ``config.provider``.

        Raises:
            ConfigurationError: On an unknown provider or malformed API key.
        """
        provider = config.provider.lower()
        if provider not in VALID_PROVIDERS:
            msg = f"Invalid LLM provider: {provider}. Must be one of {sorted(VALID_PROVIDERS)}"
            raise ConfigurationError(msg)

        try:
            api_key = validate_api_key_format(provider, config.api_key)
        except ValueError as exc:
            raise ConfigurationError(str(exc), context={"provider": provider}) from exc

        kind = ProviderKind(provider)
        if kind is ProviderKind.CLAUDE:
            return AnthropicRequestBuilder(api_key=api_key)
        return OpenAIRequestBuilder(
            api_key=api_key,
            provider=kind.value,
            http_referer=config.http_referer,
            x_title=config.x_title,
        )

    @classmethod
    def create(
        cls,
        config: LLMConfig,
        performance: PerformanceConfig,
        runtime: RuntimeConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ChatClient:
        """Create a chat client for the configured provider.

        Raises:
            ConfigurationError: If the provider, key or endpoint is invalid.
        """
        builder = cls.build_request_builder(config)
        kind = ProviderKind(builder.provider_name)
        endpoint = resolve_endpoint(kind, config.custom_endpoint)

        logger.info(
            "llm_client_factory_creating",
            extra={"provider": kind.value, "model": config.model, "endpoint": endpoint},
        )
        return ChatClient(
            builder,
            endpoint=endpoint,
            model=config.model,
            timeout_sec=performance.api_timeout_sec,
            max_response_size_mb=performance.max_response_size_mb,
            debug_payloads=bool(runtime and runtime.debug_payloads),
            transport=transport,
        )
