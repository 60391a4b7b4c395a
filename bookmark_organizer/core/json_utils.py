from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", flags=re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def _try_parse(raw: str) -> dict[str, Any] | list[Any] | None:
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict | list) else None


def _outermost(candidate: str, opener: str, closer: str) -> str | None:
    start = candidate.find(opener)
    if start == -1:
        return None
    end = candidate.rfind(closer)
    if end <= start:
        return candidate[start:]
    return candidate[start : end + 1]


def extract_json(text: str | None) -> dict[str, Any] | list[Any] | None:
    """Extract a JSON object or array from an LLM reply.

    Handles Markdown code fences, explanatory prose around the payload and
    dangling trailing commas. Returns ``None`` when nothing decodes; callers
    decide whether that is an error.
    """
    if not isinstance(text, str):
        return None

    candidate = text.strip()
    if not candidate:
        return None

    fence_match = _FENCE_RE.search(candidate)
    candidate = fence_match.group(1).strip() if fence_match else candidate.strip("`").strip()
    candidate = re.sub(r"^json\s*", "", candidate, flags=re.IGNORECASE)

    parsed = _try_parse(candidate)
    if parsed is not None:
        return parsed

    # Prefer an object payload; fall back to a bare array.
    for opener, closer in (("{", "}"), ("[", "]")):
        snippet = _outermost(candidate, opener, closer)
        if snippet is None:
            continue
        parsed = _try_parse(snippet)
        if parsed is not None:
            return parsed
        parsed = _try_parse(_TRAILING_COMMA_RE.sub(r"\1", snippet))
        if parsed is not None:
            return parsed

    return None
