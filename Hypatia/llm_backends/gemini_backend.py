from __future__ import annotations

import json
import os
import time
from typing import Any, AsyncIterator, Optional

import httpx

from .base import GenerationRequest, GenerationResult, LLMBackend
from ..infrastructure.errors import (
    CredentialError,
    MalformedResponse,
    NetworkFailure,
    classify_status,
    remote_error,
)
from ..utils import console


DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiBackend(LLMBackend):
    """
    Minimal Gemini generateContent backend using HTTPX.

    Features:
    - System instructions, sampling options and JSON response schemas
    - Google Search grounding via the `tools` field
    - Server-sent-event streaming
    - Token usage tracking

    Failures are raised as classified Hypatia errors; retrying is the job
    of the retry controller, not of the backend.
    """

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        if not self.api_key:
            raise CredentialError("GEMINI_API_KEY not set")

        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

        self._total_input_tokens = 0
        self._total_output_tokens = 0

    @property
    def token_usage(self) -> dict:
        """Return current token usage statistics."""
        return {
            "input_tokens": self._total_input_tokens,
            "output_tokens": self._total_output_tokens,
            "total_tokens": self._total_input_tokens + self._total_output_tokens,
        }

    def _update_token_usage(self, usage: dict) -> None:
        self._total_input_tokens += usage.get("promptTokenCount", 0)
        self._total_output_tokens += usage.get("candidatesTokenCount", 0)

    def _build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
        }
        if request.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": request.system_instruction}]}
        if request.tools:
            payload["tools"] = request.tools

        generation_config: dict[str, Any] = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.top_p is not None:
            generation_config["topP"] = request.top_p
        if request.top_k is not None:
            generation_config["topK"] = request.top_k
        if request.response_schema is not None:
            generation_config["responseSchema"] = request.response_schema
            generation_config["responseMimeType"] = request.response_mime_type or "application/json"
        elif request.response_mime_type:
            generation_config["responseMimeType"] = request.response_mime_type
        if generation_config:
            payload["generationConfig"] = generation_config
        return payload

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key, "content-type": "application/json"}

    @staticmethod
    def _raise_for_status(response: httpx.Response, body_text: str) -> None:
        if response.status_code < 400:
            return
        message = body_text
        try:
            err = json.loads(body_text).get("error", {})
            message = f"{err.get('status', '')} {err.get('message', body_text)}".strip()
        except (ValueError, AttributeError):
            # Non-JSON error body; classify on the raw text
            message = body_text
        kind = classify_status(response.status_code, message)
        raise remote_error(
            kind,
            f"Gemini API error {response.status_code}: {message}",
            status_code=response.status_code,
        )

    @staticmethod
    def _extract_text(data: dict) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        model = request.model or self.model
        start_time = time.perf_counter()
        try:
            resp = await self._client.post(
                f"/models/{model}:generateContent",
                headers=self._headers(),
                json=self._build_payload(request),
            )
        except httpx.TransportError as e:
            raise NetworkFailure(f"Gemini request failed: {e}", original_error=e) from e

        self._raise_for_status(resp, resp.text)
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponse("Gemini returned a non-JSON body", raw_text=resp.text) from e

        usage = data.get("usageMetadata", {})
        self._update_token_usage(usage)
        console.debug(f"Gemini {model} responded in {time.perf_counter() - start_time:.2f}s")

        return GenerationResult(
            text=self._extract_text(data),
            model=model,
            usage={k: v for k, v in usage.items() if isinstance(v, int)},
        )

    async def generate_stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        model = request.model or self.model
        try:
            async with self._client.stream(
                "POST",
                f"/models/{model}:streamGenerateContent",
                params={"alt": "sse"},
                headers=self._headers(),
                json=self._build_payload(request),
            ) as resp:
                if resp.status_code >= 400:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    self._raise_for_status(resp, body)

                last_usage: dict = {}
                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    raw = line[len("data:"):].strip()
                    if not raw:
                        continue
                    try:
                        event = json.loads(raw)
                    except ValueError as e:
                        raise MalformedResponse("Gemini stream sent an unreadable event", raw_text=raw) from e
                    # Usage counts are cumulative across events
                    last_usage = event.get("usageMetadata", last_usage)
                    text = self._extract_text(event)
                    if text:
                        yield text
                self._update_token_usage(last_usage)
        except httpx.TransportError as e:
            raise NetworkFailure(f"Gemini stream failed: {e}", original_error=e) from e

    async def aclose(self) -> None:
        await self._client.aclose()
