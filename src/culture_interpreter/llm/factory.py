"""Provider selection from configuration."""

from __future__ import annotations

from typing import Any, Dict

import httpx

from ..config import get_api_key
from .providers.anthropic_provider import AnthropicProvider
from .providers.base import InterpretationProvider

SUPPORTED_PROVIDERS = ("anthropic",)


def create_provider(
    config: Dict[str, Any],
    api_key: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> InterpretationProvider:
    """Builds the configured provider.

    Raises ValueError for an unknown provider or a missing API key; these are
    configuration errors and surface at construction time, never per request.
    """
    provider = str(config.get("llm", {}).get("provider", "")).strip().lower()
    if not provider:
        raise ValueError("llm.provider is required (set LLM_PROVIDER=anthropic)")
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(
            f"Unsupported LLM provider: {provider!r}. Supported providers: {', '.join(SUPPORTED_PROVIDERS)}"
        )
    return AnthropicProvider.from_config(config, api_key=api_key or get_api_key(), transport=transport)
