"""Rate-limit reset parsing, kept out of the retry loop itself."""

from __future__ import annotations

import logging
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

from bookmark_organizer.core.time_utils import utc_now
from bookmark_organizer.models.llm.llm_models import RetryHint

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


def retry_hint_from_headers(headers: Mapping[str, str]) -> RetryHint | None:
    """Build a hint from a ``Retry-After`` header (delta seconds or HTTP date)."""
    raw = headers.get("retry-after") or headers.get("Retry-After")
    if not raw:
        return None
    raw = raw.strip()
    try:
        return RetryHint(retry_after_sec=max(0.0, float(raw)))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        logger.warning("invalid_retry_after_header", extra={"retry_after": raw})
        return None
    if when.tzinfo is None:
        return None
    return RetryHint(retry_after_sec=max(0.0, (when - utc_now()).total_seconds()))


def retry_hint_from_error_body(data: Any) -> RetryHint | None:
    """Read OpenRouter's ``error.metadata.headers["X-RateLimit-Reset"]`` (epoch ms)."""
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if not isinstance(error, dict):
        return None
    metadata = error.get("metadata")
    if not isinstance(metadata, dict):
        return None
    headers = metadata.get("headers")
    if not isinstance(headers, dict):
        return None
    raw = headers.get("X-RateLimit-Reset") or headers.get("x-ratelimit-reset")
    if raw in (None, ""):
        return None
    try:
        return RetryHint(reset_at_ms=int(float(raw)))
    except (TypeError, ValueError):
        logger.warning("invalid_rate_limit_reset", extra={"value": str(raw)[:50]})
        return None
