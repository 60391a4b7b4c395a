from __future__ import annotations

from datetime import UTC, datetime, timedelta

# Chromium stores timestamps as microseconds since 1601-01-01 (the Windows epoch).
_WINDOWS_EPOCH = datetime(1601, 1, 1, tzinfo=UTC)
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_WINDOWS_TO_UNIX_MICROS = int((_UNIX_EPOCH - _WINDOWS_EPOCH) / timedelta(microseconds=1))


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def now_ms() -> int:
    """Milliseconds since the Unix epoch."""
    return int(utc_now().timestamp() * 1000)


def chromium_to_epoch_ms(raw: str | int | None) -> int | None:
    """Convert a Chromium ``date_added`` value to Unix epoch milliseconds."""
    if raw in (None, ""):
        return None
    try:
        micros = int(raw)
    except (TypeError, ValueError):
        return None
    if micros <= 0:
        return None
    return (micros - _WINDOWS_TO_UNIX_MICROS) // 1000


def epoch_ms_to_chromium(value: int | None) -> str:
    if value is None:
        return "0"
    return str(int(value) * 1000 + _WINDOWS_TO_UNIX_MICROS)
