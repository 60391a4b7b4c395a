"""Request builder for OpenAI-compatible chat completion APIs.

Serves OpenAI itself plus OpenRouter, xAI Grok and user-supplied custom
endpoints, which all speak the ``/chat/completions`` wire format.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from bookmark_organizer.adapters.llm.protocol import ParsedReply
from bookmark_organizer.adapters.llm.retry_hints import (
    retry_hint_from_error_body,
    retry_hint_from_headers,
)
from bookmark_organizer.models.llm.llm_models import RetryHint, TokenUsage

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


# USD per 1M tokens
OPENAI_PRICING: dict[str, dict[str, float]] = {
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4-turbo": {"input": 10.00, "output": 30.00},
    "gpt-4": {"input": 30.00, "output": 60.00},
    "gpt-3.5-turbo": {"input": 0.50, "output": 1.50},
    "grok-beta": {"input": 5.00, "output": 15.00},
    "grok-2": {"input": 2.00, "output": 10.00},
}

# Providers known to honour ``response_format={"type": "json_object"}``.
JSON_MODE_PROVIDERS = frozenset({"openai", "grok"})


class OpenAIRequestBuilder:
    """Builds headers and payloads for OpenAI-style chat completions."""

    def __init__(
        self,
        api_key: str,
        *,
        provider: str = "openai",
        http_referer: str | None = None,
        x_title: str | None = None,
    ) -> None:
        """Initialize the request builder.

        Args:
            api_key: Bearer token for the provider.
            provider: One of openai, openrouter, grok, custom.
            http_referer: OpenRouter attribution header.
            x_title: OpenRouter attribution header.
        """
        self._api_key = api_key
        self._provider = provider
        self._http_referer = http_referer
        self._x_title = x_title

    @property
    def provider_name(self) -> str:
        return self._provider

    def build_headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._provider == "openrouter":
            if self._http_referer:
                headers["HTTP-Referer"] = self._http_referer
            if self._x_title:
                headers["X-Title"] = self._x_title
        return headers

    def build_request_body(
        self,
        model: str,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = True,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": model,
            "messages": [dict(msg) for msg in messages],
            "temperature": temperature,
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if json_mode and self._provider in JSON_MODE_PROVIDERS:
            body["response_format"] = {"type": "json_object"}
        return body

    def parse_reply(self, data: dict[str, Any], *, model: str) -> ParsedReply:
        """Extract text and usage from ``choices[0].message.content``.

        Raises:
            ValueError: If the payload has no choices.
        """
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            msg = "Reply contained no choices"
            raise ValueError(msg)

        message = choices[0].get("message") or {}
        content = message.get("content")
        if isinstance(content, list):
            text = "".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )
        else:
            text = content or ""

        truncated = choices[0].get("finish_reason") == "length"
        if truncated:
            logger.warning(
                "llm_response_truncated", extra={"provider": self._provider, "model": model}
            )

        usage_data = data.get("usage") or {}
        usage = TokenUsage.from_counts(
            usage_data.get("prompt_tokens"),
            usage_data.get("completion_tokens"),
            usage_data.get("total_tokens"),
        )
        return ParsedReply(
            text=text, usage=usage, model=data.get("model") or model, truncated=truncated
        )

    def extract_error_message(self, data: dict[str, Any] | None) -> str:
        """Extract the message from ``{"error": {"message": ...}}`` or a bare string."""
        if not isinstance(data, dict):
            return "Unknown API error"
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or "Unknown API error")
        if isinstance(error, str):
            return error
        return str(data.get("message") or "Unknown API error")

    def extract_retry_hint(
        self, headers: Mapping[str, str], data: dict[str, Any] | None
    ) -> RetryHint | None:
        if self._provider == "openrouter":
            hint = retry_hint_from_error_body(data)
            if hint is not None:
                return hint
        return retry_hint_from_headers(headers)

    def calculate_cost(self, model: str, usage: TokenUsage) -> float | None:
        return calculate_cost(model, usage.prompt_tokens, usage.completion_tokens)

    def get_redacted_headers(self, headers: dict[str, str]) -> dict[str, str]:
        redacted = dict(headers)
        if "Authorization" in redacted:
            redacted["Authorization"] = "Bearer [REDACTED]"
        return redacted


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float | None:
    """Estimate USD cost; ``None`` when the model (or its ``:free`` variant) is not priced."""
    if model.endswith(":free"):
        return 0.0
    name = model.split("/", 1)[-1]
    pricing = OPENAI_PRICING.get(name)
    if pricing is None:
        # Longest known prefix wins so gpt-4o-mini-2024 does not bill as gpt-4o
        candidates = [known for known in OPENAI_PRICING if name.startswith(known)]
        if candidates:
            pricing = OPENAI_PRICING[max(candidates, key=len)]
    if pricing is None:
        return None
    return (prompt_tokens / 1_000_000) * pricing["input"] + (
        completion_tokens / 1_000_000
    ) * pricing["output"]
