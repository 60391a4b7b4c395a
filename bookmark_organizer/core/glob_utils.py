"""Case-insensitive folder-name pattern matching with ``*`` and ``?`` wildcards."""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", flags=re.DOTALL)


def match_glob_pattern(name: str, pattern: str) -> bool:
    """Return True when ``name`` matches ``pattern``.

    Both sides are trimmed and case-folded. Patterns without wildcards are
    compared exactly; otherwise the whole name must match (fully anchored).
    """
    normalized_name = name.strip().lower()
    normalized_pattern = pattern.strip().lower()
    if not normalized_pattern:
        return False
    if "*" not in normalized_pattern and "?" not in normalized_pattern:
        return normalized_name == normalized_pattern
    return _compile(normalized_pattern).match(normalized_name) is not None


def matches_any(name: str, patterns: Iterable[str]) -> bool:
    return any(match_glob_pattern(name, pattern) for pattern in patterns)
