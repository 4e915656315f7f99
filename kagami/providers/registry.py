"""Provider factory: build the right adapter for a provider config entry."""

from __future__ import annotations

from kagami.config.schema import ProviderConfig
from kagami.providers.base import LLMProvider
from kagami.providers.genai_provider import GenAIProvider
from kagami.providers.openai_provider import OpenAIProvider


def create_provider(config: ProviderConfig, timeout: float = 60.0) -> LLMProvider:
    if config.interface == "openai":
        return OpenAIProvider(config, timeout=timeout)
    if config.interface == "genai":
        return GenAIProvider(config, timeout=timeout)
    raise ValueError(f"Unsupported provider interface: {config.interface}")
