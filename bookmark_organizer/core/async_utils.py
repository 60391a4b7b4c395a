"""Async helper utilities."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any


def raise_if_cancelled(exc: BaseException) -> None:
    """Re-raise ``asyncio.CancelledError`` instances to preserve cancellation semantics."""

    if isinstance(exc, asyncio.CancelledError):  # pragma: no cover - simple guard
        raise exc


async def maybe_await(value: Any) -> Any:
    """Await ``value`` when a callback handed back a coroutine, otherwise return it."""
    if inspect.isawaitable(value):
        return await value
    return value
