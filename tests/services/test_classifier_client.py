"""Tests for the classifier client retry loop, reconciliation and prompt."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from bookmark_organizer.exceptions import BatchClassificationError, ConfigurationError
from bookmark_organizer.models.classification import KEEP_CURRENT
from bookmark_organizer.models.llm.llm_models import LLMCallResult, RetryHint, TokenUsage
from bookmark_organizer.services.classifier.client import (
    EMPTY_VOCABULARY_MESSAGE,
    ClassifierClient,
    classify_call_error,
    reconcile_destination,
)
from bookmark_organizer.services.classifier.prompt import (
    MAX_TITLE_LENGTH,
    build_classification_messages,
    format_item_line,
)
from tests.conftest import make_items

SLEEP_TARGET = "bookmark_organizer.services.classifier.client.asyncio.sleep"
VOCABULARY = ["Tech", "News"]
ITEMS = make_items(("GitHub", "https://www.github.com/x"), ("BBC", "https://bbc.com/news"))


def _ok(destinations: list[str], *, tokens: int = 10, cost: float | None = 0.01) -> LLMCallResult:
    payload = {"suggestions": [{"i": i, "f": d} for i, d in enumerate(destinations, 1)]}
    return LLMCallResult(
        status="ok",
        model="test-model",
        response_text=json.dumps(payload),
        usage=TokenUsage.from_counts(tokens, 0),
        cost_usd=cost,
        status_code=200,
    )


def _error(
    status_code: int | None, kind: str = "http", hint: RetryHint | None = None
) -> LLMCallResult:
    return LLMCallResult(
        status="error",
        model="test-model",
        status_code=status_code,
        error_text=f"HTTP {status_code}: failure",
        retry_hint=hint,
        error_context={"kind": kind, "status_code": status_code},
    )


def _llm(*results: LLMCallResult) -> MagicMock:
    llm = MagicMock()
    llm.chat = AsyncMock(side_effect=list(results))
    llm.aclose = AsyncMock()
    return llm


class TestReconcileDestination:
    def test_exact_member(self) -> None:
        assert reconcile_destination("Tech", VOCABULARY, allow_keep_current=True) == ("Tech", False)

    def test_case_and_whitespace_variant_is_canonicalized(self) -> None:
        assert reconcile_destination("  tech ", VOCABULARY, allow_keep_current=True) == (
            "Tech",
            False,
        )

    def test_unknown_becomes_keep_current(self) -> None:
        assert reconcile_destination("Sports", VOCABULARY, allow_keep_current=True) == (
            KEEP_CURRENT,
            True,
        )

    def test_unknown_falls_back_to_first_entry(self) -> None:
        assert reconcile_destination("Sports", VOCABULARY, allow_keep_current=False) == (
            "Tech",
            True,
        )

    def test_keep_current_passes_when_allowed(self) -> None:
        assert reconcile_destination("keep_current", VOCABULARY, allow_keep_current=True) == (
            KEEP_CURRENT,
            False,
        )

    def test_keep_current_is_coerced_when_disallowed(self) -> None:
        assert reconcile_destination(KEEP_CURRENT, VOCABULARY, allow_keep_current=False) == (
            "Tech",
            True,
        )


class TestClassifyCallError:
    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_retryable_statuses(self, status: int) -> None:
        assert classify_call_error(_error(status)).retryable is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_terminal_statuses(self, status: int) -> None:
        assert classify_call_error(_error(status)).retryable is False

    @pytest.mark.parametrize("kind", ["timeout", "network", "decode", "oversized"])
    def test_transport_failures_are_retryable(self, kind: str) -> None:
        assert classify_call_error(_error(None, kind=kind)).retryable is True

    def test_rate_limit_keeps_hint(self) -> None:
        hint = RetryHint(retry_after_sec=3)
        assert classify_call_error(_error(429, hint=hint)).retry_hint == hint


@pytest.mark.asyncio
class TestClassifyBatch:
    async def test_empty_vocabulary_never_calls_llm(self) -> None:
        llm = _llm()
        client = ClassifierClient(llm)
        with pytest.raises(ConfigurationError, match=EMPTY_VOCABULARY_MESSAGE):
            await client.classify_batch(ITEMS, [])
        llm.chat.assert_not_awaited()

    async def test_success_returns_assignments_in_order(self) -> None:
        llm = _llm(_ok(["News", "Tech"]))
        result = await ClassifierClient(llm).classify_batch(ITEMS, VOCABULARY)

        assert [(a.item_id, a.destination) for a in result.assignments] == [
            ("b1", "News"),
            ("b2", "Tech"),
        ]
        assert result.attempts == 1
        assert result.usage.prompt_tokens == 10
        assert result.cost_usd == 0.01
        assert result.coercions == ()

    async def test_destination_counts_reach_the_prompt(self) -> None:
        llm = _llm(_ok(["Tech", "Tech"]))
        await ClassifierClient(llm).classify_batch(ITEMS, VOCABULARY, {"News": 7})
        prompt = llm.chat.await_args.args[0][1]["content"]
        assert "News: 7 bookmarks" in prompt

    async def test_invented_destination_is_coerced_and_recorded(self) -> None:
        llm = _llm(_ok(["Gardening", "news"]))
        result = await ClassifierClient(llm, allow_keep_current=True).classify_batch(
            ITEMS, VOCABULARY
        )
        assert [a.destination for a in result.assignments] == [KEEP_CURRENT, "News"]
        assert len(result.coercions) == 1
        assert result.coercions[0].returned == "Gardening"
        assert result.coercions[0].coerced_to == KEEP_CURRENT

    async def test_retries_then_counts_only_successful_usage(self) -> None:
        llm = _llm(_error(503), _error(None, kind="timeout"), _ok(["Tech", "News"], tokens=42))
        with patch(SLEEP_TARGET, new=AsyncMock()) as sleep:
            result = await ClassifierClient(llm, max_retries=3).classify_batch(ITEMS, VOCABULARY)

        assert result.attempts == 3
        assert result.usage.prompt_tokens == 42
        assert sleep.await_count == 2

    async def test_malformed_reply_is_retried(self) -> None:
        bad = LLMCallResult(status="ok", response_text="I think Tech", status_code=200)
        llm = _llm(bad, _ok(["Tech", "News"]))
        with patch(SLEEP_TARGET, new=AsyncMock()):
            result = await ClassifierClient(llm, max_retries=1).classify_batch(ITEMS, VOCABULARY)
        assert result.attempts == 2

    async def test_terminal_error_stops_immediately(self) -> None:
        llm = _llm(_error(401))
        with patch(SLEEP_TARGET, new=AsyncMock()) as sleep:
            with pytest.raises(BatchClassificationError) as exc_info:
                await ClassifierClient(llm, max_retries=5).classify_batch(
                    ITEMS, VOCABULARY, batch_number=2, total_batches=4
                )
        assert llm.chat.await_count == 1
        sleep.assert_not_awaited()
        assert exc_info.value.batch_number == 2
        assert exc_info.value.status_code == 401

    async def test_exhausted_retries(self) -> None:
        llm = _llm(*[_error(500) for _ in range(3)])
        with patch(SLEEP_TARGET, new=AsyncMock()):
            with pytest.raises(
                BatchClassificationError, match="gave up after 3 attempts"
            ) as exc_info:
                await ClassifierClient(llm, max_retries=2).classify_batch(ITEMS, VOCABULARY)
        assert exc_info.value.attempts == 3
        assert llm.chat.await_count == 3

    async def test_rate_limit_hint_overrides_backoff(self) -> None:
        hint = RetryHint(retry_after_sec=42.0)
        llm = _llm(_error(429, hint=hint), _ok(["Tech", "News"]))
        with patch(SLEEP_TARGET, new=AsyncMock()) as sleep:
            await ClassifierClient(llm, backoff_max=30.0).classify_batch(ITEMS, VOCABULARY)
        sleep.assert_awaited_once_with(42.0)

    async def test_unbounded_hint_falls_back_to_backoff(self) -> None:
        hint = RetryHint(retry_after_sec=10_000.0)
        llm = _llm(_error(429, hint=hint), _ok(["Tech", "News"]))
        with patch(SLEEP_TARGET, new=AsyncMock()) as sleep:
            await ClassifierClient(
                llm, backoff_base=1.0, backoff_max=30.0, rate_limit_max_wait=300.0
            ).classify_batch(ITEMS, VOCABULARY)
        delay = sleep.await_args.args[0]
        assert 0.75 <= delay <= 1.25

    async def test_empty_batch_makes_no_call(self) -> None:
        llm = _llm()
        result = await ClassifierClient(llm).classify_batch([], VOCABULARY)
        assert result.assignments == ()
        llm.chat.assert_not_awaited()


class TestRetryDelay:
    def test_backoff_grows_and_caps(self) -> None:
        client = ClassifierClient(MagicMock(), backoff_base=2.0, backoff_max=30.0)
        with patch("bookmark_organizer.core.backoff.random.uniform", return_value=0.0):
            assert [client.retry_delay(n) for n in range(6)] == [2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

    def test_past_reset_time_is_ignored(self) -> None:
        client = ClassifierClient(MagicMock(), backoff_base=2.0, backoff_max=30.0)
        hint = RetryHint(reset_at_ms=1)
        with patch("bookmark_organizer.core.backoff.random.uniform", return_value=0.0):
            assert client.retry_delay(0, hint) == 2.0


class TestPrompt:
    def test_item_line_uses_host_only(self) -> None:
        line = format_item_line(1, ITEMS[0])
        assert line == "1. GitHub [github.com]"

    def test_long_titles_are_truncated(self) -> None:
        item = make_items(("x" * 500, "https://a.com"))[0]
        title = format_item_line(3, item).split(" [")[0][len("3. ") :]
        assert len(title) == MAX_TITLE_LENGTH

    def test_keep_current_only_offered_when_allowed(self) -> None:
        allowed = build_classification_messages(ITEMS, VOCABULARY, allow_keep_current=True)
        strict = build_classification_messages(ITEMS, VOCABULARY, allow_keep_current=False)
        assert KEEP_CURRENT in allowed[1]["content"]
        assert KEEP_CURRENT not in strict[1]["content"]

    def test_prompt_never_contains_full_urls(self) -> None:
        messages = build_classification_messages(ITEMS, VOCABULARY)
        assert "https://" not in messages[1]["content"]
        assert "1. Tech" in messages[1]["content"]
