"""Exception hierarchy raised by the B2 client."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .types import B2Response


class B2Error(Exception):
    """Base error for every failure surfaced by the client.

    ``kind`` names the failure category; ``retryable`` tells the retry engine
    whether another attempt may succeed. ``retry_attempts`` and
    ``retry_exhausted`` are filled in by the retry engine when it gives up.
    """

    kind = "error"
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        status_text: str | None = None,
        code: str | None = None,
        response: B2Response | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.status_text = status_text
        self.code = code
        self.response = response
        self.retryable = self.default_retryable if retryable is None else retryable
        self.retry_attempts = 0
        self.retry_exhausted = False

    @property
    def description(self) -> str:
        if self.status:
            status_info = f" {self.status_text}" if self.status_text else ""
            code_info = f" ({self.code})" if self.code else ""
            return f"HTTP {self.status}{status_info}{code_info}: {self.message}"
        return f"{self.kind}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": type(self).__name__,
            "kind": self.kind,
            "message": self.message,
            "status": self.status,
            "statusText": self.status_text,
            "code": self.code,
            "retryable": self.retryable,
            "retryAttempts": self.retry_attempts,
            "retryExhausted": self.retry_exhausted,
        }
        if self.response is not None:
            data["response"] = {
                "status": self.response.status,
                "statusText": self.response.status_text,
                "url": self.response.config.url,
                "method": self.response.config.method,
            }
        return data


class B2ValidationError(B2Error, ValueError):
    """Input violates a documented constraint; raised before any network call."""

    kind = "validation-error"


class B2HTTPError(B2Error):
    """Non-2xx response from the service."""

    kind = "http-error"


class B2AuthError(B2HTTPError):
    """Missing, bad or expired authorization."""

    kind = "auth-error"


class B2NotFoundError(B2HTTPError):
    kind = "not-found"


class B2InvalidBucketIdError(B2HTTPError):
    kind = "invalid-bucket-id"


class B2NotAllowedError(B2HTTPError):
    kind = "not-allowed"


class B2NetworkError(B2Error):
    """Connection, DNS or protocol failure below HTTP."""

    kind = "network-error"
    default_retryable = True


class B2TimeoutError(B2Error):
    kind = "timeout"
    default_retryable = True

    def __init__(self, timeout: float | None, message: str | None = None) -> None:
        super().__init__(message or f"Request timed out after {timeout} seconds")
        self.timeout = timeout

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["timeout"] = self.timeout
        return data


class B2CancelledError(B2Error):
    kind = "cancelled"

    def __init__(self, message: str = "Operation was cancelled") -> None:
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class ErrorRule:
    """One row of an operation's translation table.

    ``status`` and ``code`` match when None. ``message`` is formatted with
    the operation's context values and the service message.
    """

    error_cls: type[B2HTTPError]
    message: str
    status: int | None = None
    code: str | None = None
    as_code: str | None = None

    def matches(self, error: B2HTTPError) -> bool:
        if self.status is not None and error.status != self.status:
            return False
        return self.code is None or error.code == self.code


def translate_error(error: B2Error, rules: Sequence[ErrorRule], **context: Any) -> B2Error:
    """Refine a generic HTTP error using the first matching rule.

    Auth errors pass through untouched so session recovery still sees them.
    """
    if not isinstance(error, B2HTTPError) or isinstance(error, B2AuthError):
        return error
    for rule in rules:
        if rule.matches(error):
            code = rule.as_code or error.code
            translated = rule.error_cls(
                rule.message.format(**{"message": error.message, **context}),
                status=error.status,
                status_text=error.status_text,
                code=code,
                response=error.response,
                retryable=False,
            )
            translated.retry_attempts = error.retry_attempts
            translated.retry_exhausted = error.retry_exhausted
            return translated
    return error


__all__ = [
    "B2Error",
    "B2ValidationError",
    "B2HTTPError",
    "B2AuthError",
    "B2NotFoundError",
    "B2InvalidBucketIdError",
    "B2NotAllowedError",
    "B2NetworkError",
    "B2TimeoutError",
    "B2CancelledError",
    "ErrorRule",
    "translate_error",
]
