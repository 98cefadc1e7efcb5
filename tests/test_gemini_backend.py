"""Tests for the Gemini backend against a mocked HTTP transport."""

import json

import httpx
import pytest

from Hypatia.infrastructure.errors import CredentialError, NetworkFailure, RateLimited, ServiceUnavailable
from Hypatia.llm_backends.base import GenerationRequest
from Hypatia.llm_backends.credentials import resolve_api_key, validate_api_key
from Hypatia.llm_backends.gemini_backend import GeminiBackend


def reply(text, prompt_tokens=5, output_tokens=7):
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {"promptTokenCount": prompt_tokens, "candidatesTokenCount": output_tokens},
    }


def backend_with(handler):
    return GeminiBackend(api_key="test-key", transport=httpx.MockTransport(handler))


async def test_generate_builds_payload():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=reply("hello"))

    backend = backend_with(handler)
    result = await backend.generate(GenerationRequest(
        prompt="Say hello",
        system_instruction="Be brief.",
        temperature=0.3,
        top_k=40,
        tools=[{"google_search": {}}],
        response_schema={"type": "OBJECT"},
    ))
    await backend.aclose()

    assert result.text == "hello"
    request = seen[0]
    assert request.url.path.endswith("/models/gemini-2.5-flash:generateContent")
    assert request.headers["x-goog-api-key"] == "test-key"
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][0]["text"] == "Say hello"
    assert body["systemInstruction"]["parts"][0]["text"] == "Be brief."
    assert body["tools"] == [{"google_search": {}}]
    assert body["generationConfig"] == {
        "temperature": 0.3,
        "topK": 40,
        "responseSchema": {"type": "OBJECT"},
        "responseMimeType": "application/json",
    }


async def test_request_model_overrides_default():
    paths = []

    def handler(request):
        paths.append(request.url.path)
        return httpx.Response(200, json=reply("ok"))

    backend = backend_with(handler)
    await backend.generate(GenerationRequest(prompt="x", model="gemini-flash-lite-latest"))

    assert paths[0].endswith("/models/gemini-flash-lite-latest:generateContent")


async def test_token_usage_accumulates():
    backend = backend_with(lambda request: httpx.Response(200, json=reply("ok", 10, 3)))

    await backend.generate(GenerationRequest(prompt="a"))
    await backend.generate(GenerationRequest(prompt="b"))

    assert backend.token_usage == {"input_tokens": 20, "output_tokens": 6, "total_tokens": 26}


@pytest.mark.parametrize(
    "status, body, error",
    [
        (401, {"error": {"status": "UNAUTHENTICATED", "message": "bad key"}}, CredentialError),
        (400, {"error": {"status": "INVALID_ARGUMENT", "message": "API key not valid. Please pass a valid API key."}}, CredentialError),
        (429, {"error": {"status": "RESOURCE_EXHAUSTED", "message": "quota"}}, RateLimited),
        (503, {"error": {"status": "UNAVAILABLE", "message": "The model is overloaded."}}, ServiceUnavailable),
    ],
)
async def test_errors_are_classified(status, body, error):
    backend = backend_with(lambda request: httpx.Response(status, json=body))

    with pytest.raises(error):
        await backend.generate(GenerationRequest(prompt="x"))


async def test_transport_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend = backend_with(handler)

    with pytest.raises(NetworkFailure):
        await backend.generate(GenerationRequest(prompt="x"))


async def test_streaming_yields_deltas():
    events = [reply("Hel", 4, 1), reply("lo", 4, 2)]
    sse = "".join(f"data: {json.dumps(e)}\n\n" for e in events)
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, content=sse.encode(), headers={"content-type": "text/event-stream"})

    backend = backend_with(handler)
    chunks = [chunk async for chunk in backend.generate_stream(GenerationRequest(prompt="x"))]

    assert chunks == ["Hel", "lo"]
    assert seen[0].url.params["alt"] == "sse"
    assert seen[0].url.path.endswith(":streamGenerateContent")
    # Only the final cumulative usage is counted
    assert backend.token_usage["output_tokens"] == 2


async def test_streaming_error_status():
    backend = backend_with(lambda request: httpx.Response(429, json={"error": {"message": "slow down"}}))

    with pytest.raises(RateLimited):
        async for _ in backend.generate_stream(GenerationRequest(prompt="x")):
            pass


def test_missing_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(CredentialError):
        GeminiBackend()


class TestResolveApiKey:
    def test_direct_key_wins(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        assert resolve_api_key(" typed-key ") == "typed-key"

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        assert resolve_api_key() == "env-key"

    def test_promo_code(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        codes = {"LAB2025": "promo-key"}
        assert resolve_api_key(promo_code="LAB2025", promo_resolver=codes.get) == "promo-key"
        with pytest.raises(CredentialError):
            resolve_api_key(promo_code="NOPE", promo_resolver=codes.get)

    def test_nothing_available(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(CredentialError):
            resolve_api_key()


async def test_validate_api_key():
    good = backend_with(lambda request: httpx.Response(200, json=reply("ok")))
    bad = backend_with(lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}))

    assert await validate_api_key(good) is True
    assert await validate_api_key(bad) is False
