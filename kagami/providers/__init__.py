"""LLM providers: neutral request types, vendor adapters, fallback router."""

from kagami.providers.base import (
    ChatMessage,
    ChatRequest,
    LLMProvider,
    LLMResponse,
    ProviderError,
    Tool,
    ToolCall,
    ToolParam,
)
from kagami.providers.registry import create_provider
from kagami.providers.router import ProviderExhaustedError, ProviderRouter

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "LLMProvider",
    "LLMResponse",
    "ProviderError",
    "ProviderExhaustedError",
    "ProviderRouter",
    "Tool",
    "ToolCall",
    "ToolParam",
    "create_provider",
]
