"""
API key resolution.

A key comes from direct entry, from a promo code resolved by an external
collaborator, or from GEMINI_API_KEY in the environment.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional

from .base import GenerationRequest, LLMBackend
from ..infrastructure.errors import CredentialError

logger = logging.getLogger("hypatia.credentials")

PromoResolver = Callable[[str], Optional[str]]


def resolve_api_key(
    api_key: Optional[str] = None,
    promo_code: Optional[str] = None,
    promo_resolver: Optional[PromoResolver] = None,
) -> str:
    """
    Pick the API key for this session.

    Raises:
        CredentialError: When no source yields a key
    """
    if api_key and api_key.strip():
        return api_key.strip()

    if promo_code:
        if promo_resolver is None:
            raise CredentialError("A promo code was given but no promo resolver is configured.")
        resolved = promo_resolver(promo_code.strip())
        if not resolved:
            raise CredentialError(f"Promo code '{promo_code}' is not valid.")
        logger.info("Resolved API key from promo code")
        return resolved

    env_key = os.environ.get("GEMINI_API_KEY", "").strip()
    if env_key:
        return env_key

    raise CredentialError("No API key provided. Enter a key, a promo code, or set GEMINI_API_KEY.")


async def validate_api_key(backend: LLMBackend) -> bool:
    """Make a tiny test call; False when the service rejects the key."""
    try:
        await backend.generate(GenerationRequest(prompt="test"))
    except CredentialError:
        logger.warning("API key validation failed")
        return False
    return True
