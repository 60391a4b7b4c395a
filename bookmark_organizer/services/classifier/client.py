"""Classifier client: turns a batch of bookmarks into validated assignments."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

from bookmark_organizer.core.backoff import compute_backoff_delay
from bookmark_organizer.exceptions import (
    BatchClassificationError,
    ClassifierError,
    ConfigurationError,
    TerminalClassifierError,
    TransientClassifierError,
)
from bookmark_organizer.models.classification import (
    KEEP_CURRENT,
    Assignment,
    BatchClassification,
    Coercion,
)
from bookmark_organizer.services.classifier.prompt import build_classification_messages
from bookmark_organizer.services.classifier.response_parser import parse_classification_reply

if TYPE_CHECKING:
    from bookmark_organizer.adapters.llm.protocol import LLMClientProtocol
    from bookmark_organizer.config.settings import AppConfig
    from bookmark_organizer.models.bookmarks import BookmarkItem
    from bookmark_organizer.models.llm.llm_models import LLMCallResult, RetryHint

logger = logging.getLogger(__name__)

EMPTY_VOCABULARY_MESSAGE = "No approved folders provided. Please configure categories in settings."

# Transport failures the chat client reports without an HTTP status.
_TRANSIENT_KINDS = frozenset({"timeout", "network", "oversized", "decode"})


def is_retryable_status(status_code: int | None) -> bool:
    return status_code is not None and (status_code == 429 or status_code >= 500)


def classify_call_error(result: LLMCallResult) -> ClassifierError:
    """Map a failed ``LLMCallResult`` onto the transient/terminal taxonomy."""
    context = result.error_context or {}
    kind = context.get("kind")
    message = result.error_text or "LLM call failed"
    status_code = result.status_code

    if kind in _TRANSIENT_KINDS:
        return TransientClassifierError(message, status_code=status_code, context={"kind": kind})
    if status_code is not None and 400 <= status_code < 500 and status_code != 429:
        return TerminalClassifierError(message, status_code=status_code)
    if is_retryable_status(status_code):
        return TransientClassifierError(
            message, status_code=status_code, retry_hint=result.retry_hint
        )
    return TransientClassifierError(message, status_code=status_code)


def reconcile_destination(
    returned: str,
    vocabulary: Sequence[str],
    *,
    allow_keep_current: bool,
    _lookup: Mapping[str, str] | None = None,
) -> tuple[str, bool]:
    """Return ``(destination, coerced)`` for one raw classifier answer.

    Exact vocabulary members pass through. Case and whitespace variants are
    normalized to the vocabulary spelling without counting as a coercion.
    Anything else becomes KEEP_CURRENT when leaving items in place is
    allowed, otherwise the first vocabulary entry.
    """
    lookup = _lookup if _lookup is not None else _normalized_lookup(vocabulary)
    fallback = KEEP_CURRENT if allow_keep_current else vocabulary[0]

    normalized = " ".join(returned.split()).casefold()
    if normalized == KEEP_CURRENT.casefold():
        return (KEEP_CURRENT, False) if allow_keep_current else (fallback, True)
    if returned in vocabulary:
        return returned, False
    canonical = lookup.get(normalized)
    if canonical is not None:
        return canonical, False
    return fallback, True


def _normalized_lookup(vocabulary: Sequence[str]) -> dict[str, str]:
    lookup: dict[str, str] = {}
    for name in vocabulary:
        lookup.setdefault(" ".join(name.split()).casefold(), name)
    return lookup


class ClassifierClient:
    """Wraps the external LLM call with prompt building, parsing and retries."""

    def __init__(
        self,
        llm_client: LLMClientProtocol,
        *,
        allow_keep_current: bool = True,
        max_retries: int = 5,
        backoff_base: float = 2.0,
        backoff_max: float = 30.0,
        rate_limit_max_wait: float = 300.0,
        temperature: float = 0.2,
        max_tokens: int | None = 4096,
    ) -> None:
        self._llm = llm_client
        self._allow_keep_current = allow_keep_current
        self._max_retries = max(0, max_retries)
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._rate_limit_max_wait = rate_limit_max_wait
        self._temperature = temperature
        self._max_tokens = max_tokens

    @classmethod
    def from_config(cls, llm_client: LLMClientProtocol, config: AppConfig) -> ClassifierClient:
        perf = config.performance
        return cls(
            llm_client,
            allow_keep_current=config.organization.allow_keep_current,
            max_retries=perf.retry_attempts,
            backoff_base=perf.backoff_base_sec,
            backoff_max=perf.backoff_max_sec,
            rate_limit_max_wait=perf.rate_limit_max_wait_sec,
            temperature=config.llm.temperature,
            max_tokens=config.llm.max_tokens,
        )

    @property
    def allow_keep_current(self) -> bool:
        return self._allow_keep_current

    async def aclose(self) -> None:
        await self._llm.aclose()

    def retry_delay(self, attempt: int, hint: RetryHint | None = None) -> float:
        """Delay before the retry following failed ``attempt`` (0-indexed).

        A provider reset time wins over blind backoff when it lies within
        ``(0, rate_limit_max_wait]``.
        """
        if hint is not None:
            wait = hint.wait_seconds()
            if wait is not None and 0 < wait <= self._rate_limit_max_wait:
                return wait
        return compute_backoff_delay(attempt, self._backoff_base, self._backoff_max)

    async def classify_batch(
        self,
        items: Sequence[BookmarkItem],
        vocabulary: Sequence[str],
        destination_counts: Mapping[str, int] | None = None,
        *,
        batch_number: int | None = None,
        total_batches: int | None = None,
    ) -> BatchClassification:
        """Classify ``items`` into ``vocabulary`` members or KEEP_CURRENT.

        Raises:
            ConfigurationError: If ``vocabulary`` is empty (no network call is made).
            BatchClassificationError: On a terminal error or once retries are exhausted.
        """
        vocabulary = list(vocabulary)
        if not vocabulary:
            logger.error("classifier_empty_vocabulary")
            raise ConfigurationError(EMPTY_VOCABULARY_MESSAGE)
        if not items:
            return BatchClassification(assignments=(), attempts=0)

        messages = build_classification_messages(
            items,
            vocabulary,
            destination_counts=destination_counts,
            allow_keep_current=self._allow_keep_current,
        )
        batch_label = f"{batch_number}/{total_batches}" if batch_number else None
        total_attempts = self._max_retries + 1

        for attempt in range(total_attempts):
            result = await self._llm.chat(
                messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                json_mode=True,
                request_id=batch_label,
            )
            try:
                if not result.ok:
                    raise classify_call_error(result)
                raw_destinations = parse_classification_reply(result.response_text, items)
            except ClassifierError as err:
                if not err.retryable:
                    logger.error(
                        "classifier_terminal_error",
                        extra={
                            "batch": batch_label,
                            "status_code": err.status_code,
                            "error": err.message,
                        },
                    )
                    raise BatchClassificationError(
                        err.message,
                        batch_number=batch_number,
                        total_batches=total_batches,
                        attempts=attempt + 1,
                        cause=err,
                    ) from err
                if attempt + 1 >= total_attempts:
                    logger.error(
                        "classifier_retries_exhausted",
                        extra={
                            "batch": batch_label,
                            "attempts": total_attempts,
                            "error": err.message,
                        },
                    )
                    raise BatchClassificationError(
                        f"{err.message} (gave up after {total_attempts} attempts)",
                        batch_number=batch_number,
                        total_batches=total_batches,
                        attempts=total_attempts,
                        cause=err,
                    ) from err

                delay = self.retry_delay(attempt, err.retry_hint)
                logger.warning(
                    "classifier_retrying",
                    extra={
                        "batch": batch_label,
                        "attempt": attempt + 1,
                        "max_attempts": total_attempts,
                        "status_code": err.status_code,
                        "delay_sec": round(delay, 2),
                        "error": err.message,
                    },
                )
                await asyncio.sleep(delay)
                continue

            return self._build_classification(items, vocabulary, raw_destinations, result, attempt)

        msg = "classify_batch left the retry loop without a result"
        raise RuntimeError(msg)  # pragma: no cover

    def _build_classification(
        self,
        items: Sequence[BookmarkItem],
        vocabulary: list[str],
        raw_destinations: list[str],
        result: LLMCallResult,
        attempt: int,
    ) -> BatchClassification:
        lookup = _normalized_lookup(vocabulary)
        assignments: list[Assignment] = []
        coercions: list[Coercion] = []
        for position, (item, returned) in enumerate(zip(items, raw_destinations, strict=True), 1):
            destination, coerced = reconcile_destination(
                returned,
                vocabulary,
                allow_keep_current=self._allow_keep_current,
                _lookup=lookup,
            )
            if coerced:
                coercions.append(
                    Coercion(item_id=item.id, returned=returned, coerced_to=destination)
                )
            assignments.append(Assignment(item_id=item.id, index=position, destination=destination))

        if coercions:
            logger.warning(
                "classifier_destinations_coerced",
                extra={
                    "count": len(coercions),
                    "returned": sorted({c.returned for c in coercions})[:10],
                },
            )

        return BatchClassification(
            assignments=tuple(assignments),
            usage=result.usage,
            cost_usd=result.cost_usd,
            coercions=tuple(coercions),
            attempts=attempt + 1,
            model=result.model,
        )
