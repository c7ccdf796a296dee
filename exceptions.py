"""
Custom exceptions for the companion chat backend.

Provides specific exception types for better error handling and debugging.
External service failures carry an ErrorKind so callers can branch on the
failure class without parsing message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Classification of a failed call to an external AI service."""

    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    MODEL_UNAVAILABLE = "model_unavailable"
    TIMEOUT = "timeout"
    UPSTREAM_ERROR = "upstream_error"
    EMPTY_RESPONSE = "empty_response"


def classify_status(
    status_code: int | None,
    not_found: ErrorKind = ErrorKind.UPSTREAM_ERROR,
) -> ErrorKind:
    """
    Map an upstream HTTP status code to an ErrorKind.

    Args:
        status_code: HTTP status returned by the upstream service (None if unknown)
        not_found: Kind to use for 404; generation treats it as MODEL_UNAVAILABLE

    Returns:
        The matching ErrorKind
    """
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in (401, 403):
        return ErrorKind.UNAUTHORIZED
    if status_code == 404:
        return not_found
    return ErrorKind.UPSTREAM_ERROR


class CompanionError(Exception):
    """Base exception for all companion backend errors."""

    pass


class InvalidInputError(CompanionError):
    """Raised when client-supplied data fails a precondition (e.g. empty message)."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(reason)


class ConfigurationError(CompanionError):
    """Raised when required configuration is malformed."""

    pass


class ServiceError(CompanionError):
    """
    Base exception for failed calls to an external AI service.

    Attributes:
        kind: Classified failure kind
        details: Raw upstream detail for diagnostics (message, body, or payload)
        status_code: Upstream HTTP status if one was received
    """

    service = "upstream"

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Any = None,
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.details = details if details is not None else message
        self.status_code = status_code
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(kind={self.kind.value}, "
            f"status_code={self.status_code}, message={str(self)!r})"
        )


class GenerationError(ServiceError):
    """Raised when the text-generation service fails or returns nothing usable."""

    service = "generation"


class SynthesisError(ServiceError):
    """Raised when text-to-speech synthesis fails."""

    service = "speech"


class RenderError(ServiceError):
    """Raised when a talking-head render request or status query fails."""

    service = "avatar"
