"""Single-attempt chat client shared by every provider.

The provider-specific parts live in a request builder; this module owns the
HTTP connection, timeouts, response size guard and the mapping of transport
failures into ``LLMCallResult`` values.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx

from bookmark_organizer.core.async_utils import raise_if_cancelled
from bookmark_organizer.core.http_utils import ResponseSizeError, validate_response_size
from bookmark_organizer.core.logging_utils import truncate_log_content
from bookmark_organizer.models.llm.llm_models import LLMCallResult

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from bookmark_organizer.adapters.llm.protocol import RequestBuilderProtocol

logger = logging.getLogger(__name__)


class ChatClient:
    """Chat completions client implementing ``LLMClientProtocol``.

    Each ``chat`` call performs one HTTP request. Retry and backoff policy is
    left to the caller, which receives the status code and any rate-limit
    ``RetryHint`` on error results.
    """

    def __init__(
        self,
        builder: RequestBuilderProtocol,
        *,
        endpoint: str,
        model: str,
        timeout_sec: int = 180,
        max_response_size_mb: int = 10,
        debug_payloads: bool = False,
        max_connections: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            builder: Provider request builder selected by the factory.
            endpoint: Absolute URL of the chat endpoint.
            model: Model identifier sent with every request.
            timeout_sec: Per-request timeout in seconds.
            max_response_size_mb: Replies larger than this are rejected.
            debug_payloads: Log request and reply payloads at DEBUG level.
            max_connections: Connection pool size.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        """
        self._builder = builder
        self._endpoint = endpoint
        self._model = model
        self._timeout = httpx.Timeout(timeout_sec, connect=min(10.0, float(timeout_sec)))
        self._max_response_size_bytes = int(max_response_size_mb) * 1024 * 1024
        self._debug_payloads = debug_payloads
        self._limits = httpx.Limits(
            max_connections=max_connections, max_keepalive_connections=max_connections
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._closed = False

    @property
    def provider_name(self) -> str:
        return self._builder.provider_name

    @property
    def model(self) -> str:
        return self._model

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def __aenter__(self) -> ChatClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._closed:
            return
        self._closed = True
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._closed:
            msg = "Client has been closed"
            raise RuntimeError(msg)
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=self._limits,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    @asynccontextmanager
    async def _request_context(self) -> AsyncGenerator[httpx.AsyncClient]:
        """Map httpx transport exceptions onto builtin ones."""
        client = self._ensure_client()
        try:
            yield client
        except httpx.TimeoutException as e:
            msg = f"Request timeout: {e}"
            raise TimeoutError(msg) from e
        except httpx.TransportError as e:
            msg = f"Connection failed: {e}"
            raise ConnectionError(msg) from e

    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = True,
        request_id: str | None = None,
    ) -> LLMCallResult:
        """Send one chat completion request.

        Returns:
            ``LLMCallResult`` with ``status="ok"`` and the reply text, or
            ``status="error"`` with ``status_code``/``retry_hint`` and an
            ``error_context["kind"]`` of ``http``, ``timeout``, ``network``,
            ``oversized`` or ``decode``.

        Raises:
            RuntimeError: If the client has been closed.
            ValueError: If ``messages`` is empty.
        """
        if self._closed:
            msg = "Client has been closed"
            raise RuntimeError(msg)
        if not messages:
            msg = "Messages cannot be empty"
            raise ValueError(msg)

        headers = self._builder.build_headers()
        body = self._builder.build_request_body(
            self._model,
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
        )
        redacted_headers = self._builder.get_redacted_headers(headers)

        if self._debug_payloads:
            logger.debug(
                "llm_request",
                extra={
                    "provider": self.provider_name,
                    "model": self._model,
                    "request_id": request_id,
                    "messages": [truncate_log_content(m.get("content")) for m in messages],
                },
            )

        started = time.perf_counter()
        try:
            async with self._request_context() as client:
                resp = await client.post(self._endpoint, headers=headers, json=body)
        except TimeoutError as e:
            return self._error_result(
                str(e), kind="timeout", started=started, headers=redacted_headers
            )
        except ConnectionError as e:
            return self._error_result(
                str(e), kind="network", started=started, headers=redacted_headers
            )
        except Exception as e:
            raise_if_cancelled(e)
            raise

        latency = int((time.perf_counter() - started) * 1000)

        try:
            validate_response_size(resp, self._max_response_size_bytes, self.provider_name)
        except ResponseSizeError as e:
            return self._error_result(
                f"Response too large: {e}",
                kind="oversized",
                started=started,
                headers=redacted_headers,
                status_code=resp.status_code,
            )

        data: dict[str, Any] | None
        try:
            decoded = resp.json()
            data = decoded if isinstance(decoded, dict) else None
        except ValueError:
            data = None

        if self._debug_payloads:
            logger.debug(
                "llm_response",
                extra={
                    "provider": self.provider_name,
                    "status_code": resp.status_code,
                    "latency_ms": latency,
                    "body": truncate_log_content(resp.text),
                },
            )

        if resp.status_code >= 400:
            error_msg = self._builder.extract_error_message(data)
            retry_hint = self._builder.extract_retry_hint(resp.headers, data)
            logger.warning(
                "llm_http_error",
                extra={
                    "provider": self.provider_name,
                    "model": self._model,
                    "status_code": resp.status_code,
                    "error": error_msg,
                    "has_retry_hint": retry_hint is not None,
                    "request_id": request_id,
                },
            )
            return LLMCallResult(
                status="error",
                model=self._model,
                response_json=data,
                latency_ms=latency,
                status_code=resp.status_code,
                error_text=f"HTTP {resp.status_code}: {error_msg}",
                retry_hint=retry_hint,
                request_headers=redacted_headers,
                endpoint=self._endpoint,
                error_context={"kind": "http", "status_code": resp.status_code},
            )

        if data is None:
            return self._error_result(
                "Failed to parse JSON response",
                kind="decode",
                started=started,
                headers=redacted_headers,
                status_code=resp.status_code,
            )

        try:
            reply = self._builder.parse_reply(data, model=self._model)
        except ValueError as e:
            return self._error_result(
                str(e),
                kind="decode",
                started=started,
                headers=redacted_headers,
                status_code=resp.status_code,
            )

        cost = self._builder.calculate_cost(reply.model or self._model, reply.usage)
        logger.debug(
            "llm_call_completed",
            extra={
                "provider": self.provider_name,
                "model": reply.model,
                "latency_ms": latency,
                "tokens_prompt": reply.usage.prompt_tokens,
                "tokens_completion": reply.usage.completion_tokens,
                "cost_usd": cost,
                "request_id": request_id,
            },
        )
        return LLMCallResult(
            status="ok",
            model=reply.model,
            response_text=reply.text,
            response_json=data,
            usage=reply.usage,
            cost_usd=cost,
            latency_ms=latency,
            status_code=resp.status_code,
            request_headers=redacted_headers,
            endpoint=self._endpoint,
            error_context={"truncated": True} if reply.truncated else None,
        )

    def _error_result(
        self,
        message: str,
        *,
        kind: str,
        started: float,
        headers: dict[str, str],
        status_code: int | None = None,
    ) -> LLMCallResult:
        latency = int((time.perf_counter() - started) * 1000)
        logger.warning(
            "llm_call_failed",
            extra={
                "provider": self.provider_name,
                "model": self._model,
                "kind": kind,
                "error": message,
                "latency_ms": latency,
            },
        )
        return LLMCallResult(
            status="error",
            model=self._model,
            latency_ms=latency,
            status_code=status_code,
            error_text=message,
            request_headers=headers,
            endpoint=self._endpoint,
            error_context={"kind": kind, "status_code": status_code},
        )
