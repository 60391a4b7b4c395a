from __future__ import annotations

from urllib.parse import urlsplit


def extract_host(url: str | None) -> str:
    """Return the hostname of ``url`` without a leading ``www.``.

    Falls back to the raw string for values that do not parse as URLs, so
    ``javascript:`` bookmarklets and similar still produce something readable.
    """
    if not url:
        return ""
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        host = ""
    if not host:
        return url[:100]
    if host.startswith("www."):
        host = host[4:]
    return host
