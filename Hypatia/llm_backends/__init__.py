"""
LLM Backend implementations for Hypatia.

- LLMBackend: Abstract generation capability (injected, never global)
- GeminiBackend: Gemini REST API over HTTPX
- resolve_api_key / validate_api_key: Session credentials
"""

from .base import LLMBackend, GenerationRequest, GenerationResult
from .gemini_backend import GeminiBackend
from .credentials import resolve_api_key, validate_api_key

__all__ = [
    "LLMBackend",
    "GenerationRequest",
    "GenerationResult",
    "GeminiBackend",
    "resolve_api_key",
    "validate_api_key",
]
