from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional

from pydantic import BaseModel, Field


class GenerationRequest(BaseModel):
    """One generation call: prompt plus the recognized config options."""

    prompt: str
    system_instruction: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    tools: list[dict[str, Any]] = Field(default_factory=list)
    response_schema: Optional[dict[str, Any]] = None
    response_mime_type: Optional[str] = None
    # Overrides the backend's default model when set
    model: Optional[str] = None

    model_config = {"extra": "forbid"}

    def config_snapshot(self) -> dict[str, Any]:
        """Config portion recorded in provenance entries."""
        return self.model_dump(exclude={"prompt"}, exclude_none=True, exclude_defaults=True)


class GenerationResult(BaseModel):
    text: str
    model: Optional[str] = None
    usage: dict[str, int] = Field(default_factory=dict)


class LLMBackend(ABC):
    """
    Abstract interface for the hosted generation capability.

    Implementations raise classified errors from
    `Hypatia.infrastructure.errors` so the retry controller can decide
    what to retry.
    """

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        ...

    async def generate_stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        """
        Stream text deltas.
        Default implementation yields the non-streaming result once.
        """
        result = await self.generate(request)
        yield result.text

    async def aclose(self) -> None:
        """Release network resources."""
        return None
