"""Tests for the retry controller and error classification."""

import httpx
import pytest

from Hypatia.infrastructure.errors import (
    CredentialError,
    ErrorKind,
    ExhaustedRetries,
    MalformedResponse,
    NetworkFailure,
    RateLimited,
    ServiceUnavailable,
    SequenceAbort,
    classify_error,
    classify_status,
    describe_error,
)
from Hypatia.infrastructure.retry import RetryPolicy, call_with_retry, stream_with_retry

NO_WAIT = RetryPolicy(max_attempts=4, base_delay=0.0, jitter=0.0)


class FlakyCapability:
    """Fails with the given errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestClassification:
    def test_status_codes(self):
        assert classify_status(401) == ErrorKind.INVALID_CREDENTIALS
        assert classify_status(400, "API key not valid. Please pass a valid API key.") == ErrorKind.INVALID_CREDENTIALS
        assert classify_status(429) == ErrorKind.RATE_LIMITED
        assert classify_status(503) == ErrorKind.SERVICE_UNAVAILABLE
        assert classify_status(400, "bad request") == ErrorKind.UNCLASSIFIED

    def test_exceptions(self):
        assert classify_error(RateLimited("slow down")) == ErrorKind.RATE_LIMITED
        assert classify_error(httpx.ConnectError("refused")) == ErrorKind.NETWORK_FAILURE
        assert classify_error(RuntimeError("got 503 from upstream")) == ErrorKind.SERVICE_UNAVAILABLE
        assert classify_error(RuntimeError("something odd")) == ErrorKind.UNCLASSIFIED

    def test_describe_error_messages(self):
        assert "re-enter your key" in describe_error(CredentialError())
        exhausted = ExhaustedRetries("AI call failed", attempts=5)
        assert "retried 5 times" in describe_error(exhausted)
        assert "Step 4" in describe_error(SequenceAbort(4, "boom"))
        assert describe_error(ValueError("")) == "An unknown error occurred."


class TestCallWithRetry:
    async def test_success_after_transient_failures(self):
        capability = FlakyCapability(RateLimited("429"), ServiceUnavailable("503"))
        notes = []

        result = await call_with_retry(capability, on_notify=notes.append, policy=NO_WAIT)

        assert result == "ok"
        assert capability.calls == 3
        assert len(notes) == 2
        assert "Attempt 1/4" in notes[0]

    async def test_retry_ceiling(self):
        capability = FlakyCapability(*[NetworkFailure("down")] * 10)
        notes = []

        with pytest.raises(ExhaustedRetries) as exc_info:
            await call_with_retry(capability, on_notify=notes.append, policy=NO_WAIT, action_name="Coder call")

        assert capability.calls == NO_WAIT.max_attempts
        assert exc_info.value.attempts == NO_WAIT.max_attempts
        assert exc_info.value.last_kind == ErrorKind.NETWORK_FAILURE
        # One note per retry plus the final one
        assert len(notes) == NO_WAIT.max_attempts
        assert notes[-1].startswith("Coder call failed after 4 attempts")

    async def test_credential_error_is_not_retried(self):
        capability = FlakyCapability(CredentialError())

        with pytest.raises(CredentialError):
            await call_with_retry(capability, policy=NO_WAIT)
        assert capability.calls == 1

    async def test_unclassified_credential_text_becomes_credential_error(self):
        capability = FlakyCapability(RuntimeError("API key not valid"))

        with pytest.raises(CredentialError):
            await call_with_retry(capability, policy=NO_WAIT)
        assert capability.calls == 1

    async def test_malformed_response_is_not_retried(self):
        capability = FlakyCapability(MalformedResponse("bad json"))

        with pytest.raises(MalformedResponse):
            await call_with_retry(capability, policy=NO_WAIT)
        assert capability.calls == 1

    def test_backoff_grows(self):
        policy = RetryPolicy(base_delay=2.0, backoff_factor=2.0, jitter=0.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_jitter_is_bounded(self):
        policy = RetryPolicy(base_delay=2.0, backoff_factor=2.0, jitter=0.25)
        for _ in range(50):
            assert 4.0 <= policy.delay_for(2) <= 5.0


class TestStreamWithRetry:
    async def test_retries_before_first_chunk(self):
        attempts = []

        async def open_stream():
            attempts.append(1)
            if len(attempts) == 1:
                raise ServiceUnavailable("503")
            yield "a"
            yield "b"

        chunks = [c async for c in stream_with_retry(open_stream, on_notify=lambda m: None, policy=NO_WAIT)]

        assert chunks == ["a", "b"]
        assert len(attempts) == 2

    async def test_failure_after_first_chunk_propagates(self):
        async def open_stream():
            yield "partial"
            raise ServiceUnavailable("503")

        received = []
        with pytest.raises(ServiceUnavailable):
            async for chunk in stream_with_retry(open_stream, on_notify=lambda m: None, policy=NO_WAIT):
                received.append(chunk)
        assert received == ["partial"]
