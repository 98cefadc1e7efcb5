"""
Hypatia Error Handling Framework.

Categorizes errors for consistent handling:
- FATAL: Stop execution immediately, user action required
- DEGRADED: Local failure, surface raw output or drive a repair loop
- RECOVERABLE: Retry with backoff

Remote failures are further classified by `classify_error` into the
kinds the retry controller understands.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import httpx


class ErrorCategory(Enum):
    """Classifies errors for handling decisions."""
    FATAL = "fatal"
    DEGRADED = "degraded"
    RECOVERABLE = "recoverable"


class ErrorKind(str, Enum):
    """Classification of a failed remote call."""
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    NETWORK_FAILURE = "network_failure"
    INVALID_CREDENTIALS = "invalid_credentials"
    UNCLASSIFIED = "unclassified"


class HypatiaError(Exception):
    """Base exception for Hypatia errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.message = message
        self.category = category
        self.context = context or {}
        self.original_error = original_error
        super().__init__(message)

    def __str__(self) -> str:
        if self.original_error is not None and str(self.original_error) not in self.message:
            return f"{self.message} (cause: {self.original_error})"
        return self.message


class CredentialError(HypatiaError):
    """Missing or rejected API key. Never retried."""

    kind = ErrorKind.INVALID_CREDENTIALS

    def __init__(
        self,
        message: str = "The API key is missing or was rejected by the service.",
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message, ErrorCategory.FATAL, context, original_error)


class TransientRemoteError(HypatiaError):
    """A remote failure worth retrying."""

    kind = ErrorKind.UNCLASSIFIED

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message, ErrorCategory.RECOVERABLE, context, original_error)
        self.status_code = status_code


class RateLimited(TransientRemoteError):
    kind = ErrorKind.RATE_LIMITED


class ServiceUnavailable(TransientRemoteError):
    kind = ErrorKind.SERVICE_UNAVAILABLE


class NetworkFailure(TransientRemoteError):
    kind = ErrorKind.NETWORK_FAILURE


class UnclassifiedRemoteError(TransientRemoteError):
    kind = ErrorKind.UNCLASSIFIED


class ExhaustedRetries(HypatiaError):
    """Raised once the retry bound is hit."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_kind: ErrorKind = ErrorKind.UNCLASSIFIED,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            ErrorCategory.RECOVERABLE,
            context={"attempts": attempts, "last_kind": last_kind.value},
            original_error=original_error,
        )
        self.attempts = attempts
        self.last_kind = last_kind


class MalformedResponse(HypatiaError):
    """Model output failed a local structural check."""

    def __init__(
        self,
        message: str,
        raw_text: str = "",
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, ErrorCategory.DEGRADED, context)
        self.raw_text = raw_text


class SandboxExecutionError(HypatiaError):
    """The sandbox could not run a script at all (as opposed to the script failing)."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.DEGRADED, context)


class RunSuperseded(HypatiaError):
    """A newer run (or teardown) replaced the run that was doing this work."""

    def __init__(self, message: str = "The run was superseded."):
        super().__init__(message, ErrorCategory.FATAL)


class SequenceAbort(HypatiaError):
    """The automation sequencer stopped at a failed step."""

    def __init__(
        self,
        step: int,
        message: str,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            ErrorCategory.FATAL,
            context={"step": step},
            original_error=original_error,
        )
        self.step = step


_KIND_TO_ERROR: dict[ErrorKind, type[TransientRemoteError]] = {
    ErrorKind.RATE_LIMITED: RateLimited,
    ErrorKind.SERVICE_UNAVAILABLE: ServiceUnavailable,
    ErrorKind.NETWORK_FAILURE: NetworkFailure,
    ErrorKind.UNCLASSIFIED: UnclassifiedRemoteError,
}


def classify_status(status_code: int, message: str = "") -> ErrorKind:
    """Map an HTTP status (and service message) onto an ErrorKind."""
    lowered = message.lower()
    if status_code in (401, 403) or "api key not valid" in lowered or "api_key_invalid" in lowered:
        return ErrorKind.INVALID_CREDENTIALS
    if status_code == 429 or "resource_exhausted" in lowered:
        return ErrorKind.RATE_LIMITED
    if status_code >= 500:
        return ErrorKind.SERVICE_UNAVAILABLE
    return ErrorKind.UNCLASSIFIED


def classify_error(error: BaseException) -> ErrorKind:
    """
    Classify an arbitrary exception raised by a remote capability.

    Already-classified Hypatia errors keep their kind; httpx errors are
    mapped by status or transport failure; anything else falls back to
    string sniffing the way the service formats its messages.
    """
    if isinstance(error, CredentialError):
        return ErrorKind.INVALID_CREDENTIALS
    if isinstance(error, TransientRemoteError):
        return error.kind
    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(error.response.status_code, error.response.text)
    if isinstance(error, (httpx.TransportError, TimeoutError, ConnectionError)):
        return ErrorKind.NETWORK_FAILURE

    text = str(error).lower()
    if "api key not valid" in text:
        return ErrorKind.INVALID_CREDENTIALS
    if "429" in text or "too many requests" in text or "resource_exhausted" in text:
        return ErrorKind.RATE_LIMITED
    if "503" in text or "500" in text or "unavailable" in text or "timed out" in text:
        return ErrorKind.SERVICE_UNAVAILABLE
    if "fetch failed" in text or "network" in text or "connection" in text:
        return ErrorKind.NETWORK_FAILURE
    return ErrorKind.UNCLASSIFIED


def remote_error(
    kind: ErrorKind,
    message: str,
    status_code: Optional[int] = None,
    original_error: Optional[BaseException] = None,
) -> HypatiaError:
    """Build the exception that represents a classified remote failure."""
    if kind == ErrorKind.INVALID_CREDENTIALS:
        return CredentialError(message, context={"status_code": status_code}, original_error=original_error)
    return _KIND_TO_ERROR[kind](message, status_code=status_code, original_error=original_error)


def describe_error(error: BaseException, fallback: str = "An unknown error occurred.") -> str:
    """Turn an exception into the message shown to the user."""
    if isinstance(error, CredentialError):
        return "Authentication failed: the API key is not valid. Please re-enter your key and try again."
    if isinstance(error, ExhaustedRetries):
        return (
            "The AI service is currently busy or unresponsive. The operation was retried "
            f"{error.attempts} times but failed. Please try again in a few moments."
        )
    if isinstance(error, MalformedResponse):
        return f"The AI returned output that could not be used: {error.message}"
    if isinstance(error, SequenceAbort):
        return f"Automation stopped at Step {error.step}: {error.message}"

    kind = classify_error(error)
    if kind == ErrorKind.RATE_LIMITED:
        return "You have made too many requests in a short period. Please wait a moment and try again."
    if kind == ErrorKind.SERVICE_UNAVAILABLE:
        return "The service is temporarily unavailable. Please try again later."
    if kind == ErrorKind.NETWORK_FAILURE:
        return "A network error occurred. Please check your internet connection."
    if kind == ErrorKind.INVALID_CREDENTIALS:
        return "Authentication failed: the API key is not valid. Please re-enter your key and try again."

    message = str(error)
    return message or fallback
