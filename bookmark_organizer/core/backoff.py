"""Shared exponential backoff with jitter.

Centralizes the delay computation used by the classifier retry loop so the
algorithm lives in one place and can be tested without sleeping.
"""

from __future__ import annotations

import random


def compute_backoff_delay(
    attempt: int,
    backoff_base: float = 2.0,
    max_delay: float = 30.0,
    *,
    jitter: bool = True,
) -> float:
    """Return the delay before retry ``attempt`` (0-indexed).

    Delay formula: ``min(max_delay, max(0, backoff_base * 2^attempt)) * (1 + uniform(-0.25, 0.25))``
    The jittered value never exceeds ``max_delay``.
    """
    base_delay = min(max_delay, max(0.0, backoff_base * (2**attempt)))
    if not jitter:
        return base_delay
    return min(max_delay, base_delay * (1.0 + random.uniform(-0.25, 0.25)))
