"""LLM client protocol defining the common interface for all providers.

Providers differ only in wire shape, so each one is described by a request
builder; a single ``ChatClient`` drives whichever builder the factory picked.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from bookmark_organizer.models.llm.llm_models import LLMCallResult, RetryHint, TokenUsage


class ParsedReply(NamedTuple):
    text: str
    usage: TokenUsage
    model: str | None
    truncated: bool = False


@runtime_checkable
class RequestBuilderProtocol(Protocol):
    """Provider-specific request shaping and reply normalization."""

    @property
    def provider_name(self) -> str: ...

    def build_headers(self) -> dict[str, str]: ...

    def build_request_body(
        self,
        model: str,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = True,
    ) -> dict[str, Any]: ...

    def parse_reply(self, data: dict[str, Any], *, model: str) -> ParsedReply: ...

    def extract_error_message(self, data: dict[str, Any] | None) -> str: ...

    def extract_retry_hint(
        self, headers: Mapping[str, str], data: dict[str, Any] | None
    ) -> RetryHint | None: ...

    def calculate_cost(self, model: str, usage: TokenUsage) -> float | None: ...

    def get_redacted_headers(self, headers: dict[str, str]) -> dict[str, str]: ...


@runtime_checkable
class LLMClientProtocol(Protocol):
    """Interface the classifier depends on.

    ``chat`` performs exactly one HTTP attempt and never raises for HTTP or
    transport failures; those come back as an ``LLMCallResult`` with
    ``status="error"`` so the caller owns the retry policy.
    """

    @property
    def provider_name(self) -> str: ...

    @property
    def model(self) -> str: ...

    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = True,
        request_id: str | None = None,
    ) -> LLMCallResult: ...

    async def aclose(self) -> None: ...
