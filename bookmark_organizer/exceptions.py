"""Exception hierarchy for the bookmark organizer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bookmark_organizer.models.llm.llm_models import RetryHint


class OrganizerError(Exception):
    """Base exception for all organizer errors."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ConfigurationError(OrganizerError):
    """Raised for caller misconfiguration: empty vocabulary, missing credentials."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, context=context)
        self.context["error_type"] = "configuration"


class ClassifierError(OrganizerError):
    """Raised when the external classifier could not produce usable assignments."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool | None = None,
        retry_hint: RetryHint | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable
        self.retry_hint = retry_hint
        if status_code is not None:
            self.context["status_code"] = status_code


class TransientClassifierError(ClassifierError):
    """Rate limit, 5xx, timeout, network failure or oversized reply."""

    retryable = True


class TerminalClassifierError(ClassifierError):
    """A 4xx other than 429: retrying cannot help."""

    retryable = False


class ReplyParseError(TransientClassifierError):
    """The reply did not decode to one destination per submitted item."""

    def __init__(
        self,
        message: str,
        *,
        missing_indices: list[int] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.missing_indices = missing_indices or []
        if self.missing_indices:
            self.context["missing_indices"] = self.missing_indices


class BatchClassificationError(ClassifierError):
    """A batch could not be classified after exhausting retries or on a terminal error."""

    def __init__(
        self,
        message: str,
        *,
        batch_number: int | None = None,
        total_batches: int | None = None,
        attempts: int = 0,
        cause: ClassifierError | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            status_code=cause.status_code if cause else None,
            retryable=False,
            context=context,
        )
        self.batch_number = batch_number
        self.total_batches = total_batches
        self.attempts = attempts
        self.cause = cause
        self.context["attempts"] = attempts


class BookmarkStoreError(OrganizerError):
    """A single bookmark store primitive failed."""

    def __init__(
        self,
        message: str,
        *,
        node_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.node_id = node_id
        if node_id is not None:
            self.context["node_id"] = node_id


class ReorganizationInProgressError(OrganizerError):
    """A run was requested while another run is active."""

    def __init__(self, message: str = "Reorganization already in progress") -> None:
        super().__init__(message)
