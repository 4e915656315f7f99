"""OpenAI-compatible chat completions, called through LiteLLM.

Works against api.openai.com or any OpenAI-compatible endpoint
(``base_url``). Each call picks an API key at random from the pool.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import json_repair
import litellm
from litellm import acompletion
from loguru import logger

from kagami.config.schema import ProviderConfig
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
from kagami.providers.keys import ApiKeyPool

DEFAULT_BASE_URL = "https://api.openai.com/v1"

# Per-call timeout in seconds
LLM_CALL_TIMEOUT: float = 60.0


class OpenAIProvider(LLMProvider):
    """Adapter for the OpenAI chat completions wire format."""

    interface = "openai"

    def __init__(
        self,
        config: ProviderConfig,
        timeout: float = LLM_CALL_TIMEOUT,
        keys: ApiKeyPool | None = None,
    ) -> None:
        self.base_url = config.base_url or DEFAULT_BASE_URL
        self.keys = keys or ApiKeyPool(config.api_keys)
        self._timeout = timeout

        # Disable LiteLLM logging noise
        litellm.suppress_debug_info = True
        # Drop unsupported parameters for providers (e.g., response_format on older models)
        litellm.drop_params = True

    async def chat(self, model: str, request: ChatRequest) -> LLMResponse:
        kwargs: dict[str, Any] = {
            # openai/ prefix routes through LiteLLM's OpenAI-compatible client
            "model": f"openai/{model}",
            "messages": self.convert_messages(request.messages),
            "api_key": self.keys.pick(),
            "api_base": self.base_url,
            "response_format": {
                "type": "json_object" if request.output_format == "json" else "text",
            },
        }
        tools = self.convert_tools(request.tools)
        if tools:
            kwargs["tools"] = tools
            if request.tool_choice:
                kwargs["tool_choice"] = request.tool_choice

        try:
            response = await asyncio.wait_for(acompletion(**kwargs), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"OpenAI timeout after {self._timeout}s on {model}") from e
        except Exception as e:
            raise ProviderError(f"OpenAI API call failed on {model}: {e}") from e

        return self._parse_response(response)

    # ── Request conversion ────────────────────────────────────────────

    @staticmethod
    def convert_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "assistant" and msg.tool_calls:
                converted.append({
                    "role": "assistant",
                    "content": msg.content,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": json.dumps(tc.arguments, ensure_ascii=False),
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            elif msg.role == "tool":
                converted.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": json.dumps(msg.response or {}, ensure_ascii=False),
                })
            else:
                converted.append({"role": msg.role, "content": msg.content})
        return converted

    @classmethod
    def convert_tools(cls, tools: list[Tool]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": cls.convert_param(tool.parameters),
                },
            }
            for tool in tools
        ]

    @classmethod
    def convert_param(cls, param: ToolParam) -> dict[str, Any]:
        """Neutral parameter → JSON Schema as OpenAI expects it."""
        result: dict[str, Any] = {"type": param.type, "description": param.description}
        if param.type == "object":
            result["properties"] = {k: cls.convert_param(v) for k, v in param.properties.items()}
            if param.required:
                result["required"] = list(param.required)
        elif param.type == "array" and param.items is not None:
            result["items"] = cls.convert_param(param.items)
        elif param.type == "string" and param.enum:
            result["enum"] = list(param.enum)
        elif param.type in ("number", "integer") and param.enum:
            result["enum"] = [str(v) for v in param.enum]
        return result

    # ── Response conversion ───────────────────────────────────────────

    @staticmethod
    def _parse_response(response: Any) -> LLMResponse:
        """Parse LiteLLM response into our neutral format."""
        if not getattr(response, "choices", None):
            raise ProviderError("OpenAI response contained no choices")
        choice = response.choices[0]
        message = choice.message

        tool_calls: list[ToolCall] = []
        for tc in getattr(message, "tool_calls", None) or []:
            if getattr(tc, "type", "function") != "function":
                continue
            args = tc.function.arguments
            if isinstance(args, str):
                args = json_repair.loads(args) if args else {}
            if not isinstance(args, dict):
                logger.warning(f"Tool call {tc.function.name} arguments are not an object, dropping them")
                args = {}
            tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, arguments=args))

        usage: dict[str, int] = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=message.content or None,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )
