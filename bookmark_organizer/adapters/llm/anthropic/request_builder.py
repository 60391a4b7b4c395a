"""Anthropic request builder for constructing Messages API payloads."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from bookmark_organizer.adapters.llm.protocol import ParsedReply
from bookmark_organizer.adapters.llm.retry_hints import retry_hint_from_headers
from bookmark_organizer.models.llm.llm_models import RetryHint, TokenUsage

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


# USD per 1M tokens
ANTHROPIC_PRICING: dict[str, dict[str, float]] = {
    "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
    "claude-3-opus-20240229": {"input": 15.00, "output": 75.00},
    "claude-3-sonnet-20240229": {"input": 3.00, "output": 15.00},
    "claude-3-haiku-20240307": {"input": 0.25, "output": 1.25},
}


class AnthropicRequestBuilder:
    """Builds request headers and payloads for Anthropic API calls."""

    def __init__(self, api_key: str, *, anthropic_version: str = "2023-06-01") -> None:
        self._api_key = api_key
        self._anthropic_version = anthropic_version

    @property
    def provider_name(self) -> str:
        return "claude"

    def build_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "Content-Type": "application/json",
            "anthropic-version": self._anthropic_version,
        }

    def build_request_body(
        self,
        model: str,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = True,
    ) -> dict[str, Any]:
        """Build the request body for the Messages API.

        Anthropic takes the system prompt as a top-level ``system`` parameter
        and requires ``max_tokens``. There is no JSON mode switch, so
        ``json_mode`` is accepted for interface parity only.
        """
        system_parts: list[str] = []
        converted: list[dict[str, str]] = []
        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content", "")
            if role == "system":
                system_parts.append(content)
                continue
            converted.append(
                {"role": role if role in ("user", "assistant") else "user", "content": content}
            )

        body: dict[str, Any] = {
            "model": model,
            "messages": converted,
            "max_tokens": max_tokens or 4096,
            "temperature": min(temperature, 1.0),
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        return body

    def parse_reply(self, data: dict[str, Any], *, model: str) -> ParsedReply:
        """Concatenate the ``text`` content blocks.

        Raises:
            ValueError: If the payload has no content blocks.
        """
        blocks = data.get("content")
        if not isinstance(blocks, list) or not blocks:
            msg = "Reply contained no content blocks"
            raise ValueError(msg)
        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )

        truncated = data.get("stop_reason") == "max_tokens"
        if truncated:
            logger.warning("llm_response_truncated", extra={"provider": "claude", "model": model})

        usage_data = data.get("usage") or {}
        usage = TokenUsage.from_counts(
            usage_data.get("input_tokens"), usage_data.get("output_tokens")
        )
        return ParsedReply(
            text=text, usage=usage, model=data.get("model") or model, truncated=truncated
        )

    def extract_error_message(self, data: dict[str, Any] | None) -> str:
        """Anthropic error format: ``{"type": "error", "error": {"type": ..., "message": ...}}``."""
        if not isinstance(data, dict):
            return "Unknown API error"
        error = data.get("error", {})
        if isinstance(error, dict):
            return str(error.get("message") or error.get("type") or "Unknown API error")
        if isinstance(error, str):
            return error
        return str(data.get("message") or "Unknown API error")

    def extract_retry_hint(
        self, headers: Mapping[str, str], data: dict[str, Any] | None
    ) -> RetryHint | None:
        return retry_hint_from_headers(headers)

    def calculate_cost(self, model: str, usage: TokenUsage) -> float | None:
        return calculate_cost(model, usage.prompt_tokens, usage.completion_tokens)

    def get_redacted_headers(self, headers: dict[str, str]) -> dict[str, str]:
        redacted = dict(headers)
        if "x-api-key" in redacted:
            redacted["x-api-key"] = "[REDACTED]"
        return redacted


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float | None:
    """Estimate the USD cost of a call, or ``None`` if model pricing is unknown."""
    pricing = ANTHROPIC_PRICING.get(model)
    if not pricing:
        for known_model, prices in ANTHROPIC_PRICING.items():
            if model.startswith(known_model.rsplit("-", 1)[0]):
                pricing = prices
                break
    if not pricing:
        return None
    return (prompt_tokens / 1_000_000) * pricing["input"] + (
        completion_tokens / 1_000_000
    ) * pricing["output"]
