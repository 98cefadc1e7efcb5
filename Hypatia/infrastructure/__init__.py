"""Error taxonomy and retry controller."""

from .errors import (
    ErrorCategory,
    ErrorKind,
    HypatiaError,
    CredentialError,
    TransientRemoteError,
    RateLimited,
    ServiceUnavailable,
    NetworkFailure,
    UnclassifiedRemoteError,
    ExhaustedRetries,
    MalformedResponse,
    SandboxExecutionError,
    RunSuperseded,
    SequenceAbort,
    classify_error,
    classify_status,
    describe_error,
    remote_error,
)
from .retry import RetryPolicy, DEFAULT_POLICY, call_with_retry, stream_with_retry

__all__ = [
    "ErrorCategory",
    "ErrorKind",
    "HypatiaError",
    "CredentialError",
    "TransientRemoteError",
    "RateLimited",
    "ServiceUnavailable",
    "NetworkFailure",
    "UnclassifiedRemoteError",
    "ExhaustedRetries",
    "MalformedResponse",
    "SandboxExecutionError",
    "RunSuperseded",
    "SequenceAbort",
    "classify_error",
    "classify_status",
    "describe_error",
    "remote_error",
    "RetryPolicy",
    "DEFAULT_POLICY",
    "call_with_retry",
    "stream_with_retry",
]
