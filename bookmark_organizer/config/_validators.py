from __future__ import annotations

from typing import Any

# Provider -> accepted key prefixes. "custom" endpoints accept any non-empty key.
API_KEY_PREFIXES: dict[str, tuple[str, ...]] = {
    "openai": ("sk-",),
    "claude": ("sk-ant-",),
    "grok": ("xai-",),
    "openrouter": ("sk-or-",),
}
MIN_API_KEY_LENGTH = 20


def validate_model_name(model: str) -> str:
    """Validate model name for security and allow OpenRouter-style IDs."""
    if not model:
        msg = "Model name cannot be empty"
        raise ValueError(msg)
    if len(model) > 100:
        msg = "Model name too long"
        raise ValueError(msg)

    allowed = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_.:/")
    if ".." in model or any(ch not in allowed for ch in model):
        msg = "Model name contains invalid characters"
        raise ValueError(msg)

    return model


def _ensure_api_key(value: str, *, name: str) -> str:
    value = (value or "").strip()
    if not value:
        msg = f"{name} API key is required"
        raise ValueError(msg)
    if len(value) > 500:
        msg = f"{name} API key appears to be too long"
        raise ValueError(msg)
    if any(char in value for char in [" ", "\n", "\t"]):
        msg = f"{name} API key contains invalid characters"
        raise ValueError(msg)
    return value


def validate_api_key_format(provider: str, api_key: str) -> str:
    """Check a key against the provider's known prefix and minimum length.

    Returns the stripped key. Raises ``ValueError`` with a readable message.
    """
    key = _ensure_api_key(api_key, name=provider)
    prefixes = API_KEY_PREFIXES.get(provider)
    if prefixes is None:
        return key
    if not key.startswith(prefixes):
        msg = f"{provider} API keys must start with {' or '.join(repr(p) for p in prefixes)}"
        raise ValueError(msg)
    if len(key) < MIN_API_KEY_LENGTH:
        msg = f"{provider} API key appears too short (minimum {MIN_API_KEY_LENGTH} characters)"
        raise ValueError(msg)
    return key


def _parse_csv(value: Any) -> tuple[str, ...]:
    """Split a comma-separated env value (or accept a list) into trimmed, non-empty entries."""
    if value in (None, ""):
        return ()
    pieces = value if isinstance(value, list | tuple) else str(value).split(",")
    return tuple(str(piece).strip() for piece in pieces if str(piece).strip())


def _dedupe_preserving_order(values: tuple[str, ...]) -> tuple[str, ...]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return tuple(result)
