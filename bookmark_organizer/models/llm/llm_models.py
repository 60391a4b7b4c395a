"""Data models for LLM interactions backed by Pydantic validation."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bookmark_organizer.core.time_utils import now_ms


class TokenUsage(BaseModel):
    """Provider-neutral token counters."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(
        cls, prompt: int | None, completion: int | None, total: int | None = None
    ) -> TokenUsage:
        prompt_tokens = int(prompt or 0)
        completion_tokens = int(completion or 0)
        total_tokens = int(total) if total else prompt_tokens + completion_tokens
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
        )

    def __add__(self, other: TokenUsage) -> TokenUsage:
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class RetryHint(BaseModel):
    """Provider-supplied advice on when a rate-limited request may be retried.

    ``retry_after_sec`` comes from a ``Retry-After`` header; ``reset_at_ms`` is an
    absolute reset time in epoch milliseconds (OpenRouter reports this inside
    the error body).
    """

    model_config = ConfigDict(frozen=True)

    retry_after_sec: float | None = None
    reset_at_ms: int | None = None

    def wait_seconds(self, now: int | None = None) -> float | None:
        if self.reset_at_ms is not None:
            current = now_ms() if now is None else now
            return (self.reset_at_ms - current) / 1000.0
        return self.retry_after_sec


class LLMCallResult(BaseModel):
    """Result of a single LLM API attempt with its metadata."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(description="High-level result status (ok, error).")
    model: str | None = Field(default=None, description="Model that produced the response.")
    response_text: str | None = Field(
        default=None, description="Primary text response returned by the provider."
    )
    response_json: dict[str, Any] | None = Field(
        default=None, description="Decoded JSON payload returned by the provider."
    )
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost_usd: float | None = Field(default=None, description="Estimated USD cost for the request.")
    latency_ms: int | None = Field(default=None, description="Observed latency in milliseconds.")
    status_code: int | None = Field(default=None, description="HTTP status, if a response arrived.")
    error_text: str | None = Field(default=None, description="Error message when the call fails.")
    retry_hint: RetryHint | None = Field(default=None)
    request_headers: dict[str, Any] | None = Field(
        default=None, description="Redacted HTTP headers sent with the request."
    )
    endpoint: str | None = Field(default=None, description="Endpoint used for the LLM call.")
    error_context: dict[str, Any] | None = Field(
        default=None, description="Additional context about encountered errors."
    )

    @property
    def ok(self) -> bool:
        return self.status == "ok"
