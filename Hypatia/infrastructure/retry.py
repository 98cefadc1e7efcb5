"""
Retry controller for remote LLM calls.

Wraps a capability with bounded exponential backoff and jitter.
Credential failures and local structural failures are never retried.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

from .errors import (
    CredentialError,
    ErrorKind,
    ExhaustedRetries,
    MalformedResponse,
    SandboxExecutionError,
    classify_error,
)
from ..utils import console

T = TypeVar("T")

Notify = Callable[[str], None]

_REASONS = {
    ErrorKind.RATE_LIMITED: "rate limit hit",
    ErrorKind.SERVICE_UNAVAILABLE: "service unavailable",
    ErrorKind.NETWORK_FAILURE: "network failure",
    ErrorKind.UNCLASSIFIED: "failed",
}


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt bound and backoff shape."""

    max_attempts: int = 5
    base_delay: float = 2.0
    backoff_factor: float = 2.0
    # Fraction of the delay added as random jitter
    jitter: float = 0.25

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        delay = self.base_delay * (self.backoff_factor ** (attempt - 1))
        if self.jitter > 0 and delay > 0:
            delay += random.uniform(0, delay * self.jitter)
        return delay


DEFAULT_POLICY = RetryPolicy()

_NEVER_RETRIED = (MalformedResponse, SandboxExecutionError)


def _notify(on_notify: Optional[Notify], message: str) -> None:
    if on_notify is not None:
        on_notify(message)
    else:
        console.warning(message)


async def call_with_retry(
    capability: Callable[..., Awaitable[T]],
    *args: Any,
    on_notify: Optional[Notify] = None,
    policy: Optional[RetryPolicy] = None,
    action_name: str = "AI call",
    **kwargs: Any,
) -> T:
    """
    Call an async capability, retrying transient failures.

    Args:
        capability: Async callable to invoke
        on_notify: Receives interim progress messages before each retry
            and a final message once attempts are exhausted
        policy: Attempt bound and backoff shape
        action_name: Name of the action (for messages)

    Returns:
        Result of the capability

    Raises:
        CredentialError: Immediately, on invalid credentials
        MalformedResponse: Immediately, never retried
        ExhaustedRetries: After policy.max_attempts failed attempts
    """
    policy = policy or DEFAULT_POLICY
    last_error: Optional[BaseException] = None
    last_kind = ErrorKind.UNCLASSIFIED

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await capability(*args, **kwargs)
        except _NEVER_RETRIED:
            raise
        except Exception as e:
            kind = classify_error(e)
            if kind == ErrorKind.INVALID_CREDENTIALS:
                if isinstance(e, CredentialError):
                    raise
                raise CredentialError(original_error=e) from e

            last_error = e
            last_kind = kind
            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                _notify(
                    on_notify,
                    f"{action_name} {_REASONS[kind]}. Retrying in {delay:.1f}s... "
                    f"(Attempt {attempt}/{policy.max_attempts})",
                )
                await asyncio.sleep(delay)

    message = f"{action_name} failed after {policy.max_attempts} attempts"
    _notify(on_notify, f"{message}: {last_error}")
    raise ExhaustedRetries(
        message,
        attempts=policy.max_attempts,
        last_kind=last_kind,
        original_error=last_error,
    )


async def stream_with_retry(
    open_stream: Callable[[], AsyncIterator[str]],
    on_notify: Optional[Notify] = None,
    policy: Optional[RetryPolicy] = None,
    action_name: str = "AI streaming call",
) -> AsyncIterator[str]:
    """
    Yield chunks from a stream, retrying only until the first chunk arrives.

    Once any chunk has been yielded a failure propagates unchanged, since
    the caller has already consumed partial output.
    """
    policy = policy or DEFAULT_POLICY
    last_error: Optional[BaseException] = None
    last_kind = ErrorKind.UNCLASSIFIED

    for attempt in range(1, policy.max_attempts + 1):
        started = False
        try:
            async for chunk in open_stream():
                started = True
                yield chunk
            return
        except _NEVER_RETRIED:
            raise
        except Exception as e:
            if started:
                raise
            kind = classify_error(e)
            if kind == ErrorKind.INVALID_CREDENTIALS:
                if isinstance(e, CredentialError):
                    raise
                raise CredentialError(original_error=e) from e

            last_error = e
            last_kind = kind
            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                _notify(
                    on_notify,
                    f"{action_name} {_REASONS[kind]}. Retrying in {delay:.1f}s... "
                    f"(Attempt {attempt}/{policy.max_attempts})",
                )
                await asyncio.sleep(delay)

    message = f"{action_name} failed after {policy.max_attempts} attempts"
    _notify(on_notify, f"{message}: {last_error}")
    raise ExhaustedRetries(
        message,
        attempts=policy.max_attempts,
        last_kind=last_kind,
        original_error=last_error,
    )
