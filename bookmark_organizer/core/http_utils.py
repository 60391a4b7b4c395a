from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)


class ResponseSizeError(ValueError):
    """Raised when a response exceeds the maximum allowed size."""

    def __init__(self, message: str, *, actual_size: int | None = None, max_size: int) -> None:
        super().__init__(message)
        self.actual_size = actual_size
        self.max_size = max_size


def validate_response_size(
    response: httpx.Response,
    max_size_bytes: int,
    service_name: str,
) -> None:
    """Reject a response whose declared or actual body exceeds ``max_size_bytes``.

    The Content-Length header is checked first; when it is absent or
    malformed the already-read body length is used instead.

    Raises:
        ResponseSizeError: If the response is larger than allowed.
        ValueError: If ``max_size_bytes`` is not a positive integer.
    """
    if not isinstance(max_size_bytes, int) or max_size_bytes <= 0:
        msg = f"max_size_bytes must be a positive integer, got {max_size_bytes}"
        raise ValueError(msg)

    declared: int | None = None
    content_length = response.headers.get("content-length")
    if content_length:
        try:
            declared = int(content_length)
        except ValueError:
            logger.warning(
                "invalid_content_length_header",
                extra={"service": service_name, "content_length": content_length},
            )

    size = declared if declared is not None else len(response.content)
    if size > max_size_bytes:
        logger.error(
            "response_size_exceeded",
            extra={
                "service": service_name,
                "size": size,
                "max_size": max_size_bytes,
                "status_code": response.status_code,
            },
        )
        msg = f"{service_name} response size ({size} bytes) exceeds limit ({max_size_bytes} bytes)"
        raise ResponseSizeError(msg, actual_size=size, max_size=max_size_bytes)

    if size > max_size_bytes * 0.5:
        logger.warning(
            "large_response_size",
            extra={
                "service": service_name,
                "size": size,
                "percentage": round(100 * size / max_size_bytes, 1),
            },
        )
