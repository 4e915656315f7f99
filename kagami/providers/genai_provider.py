"""Google Gemini (GenAI) adapter over the generateContent REST API.

Differences from the OpenAI shape that this adapter absorbs:

- system messages are folded into a separate ``systemInstruction`` field
- the assistant role is called ``model``
- tool results travel as a user turn with a ``functionResponse`` part
- schema types are upper-case (STRING, NUMBER, ...), enums are strings
- function calls may come back without an id
"""

from __future__ import annotations

import uuid
from typing import Any

import httpx
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

GENAI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

_TYPE_MAPPING: dict[str, str] = {
    "string": "STRING",
    "number": "NUMBER",
    "integer": "INTEGER",
    "boolean": "BOOLEAN",
    "object": "OBJECT",
    "array": "ARRAY",
}

_TOOL_CHOICE_MAPPING: dict[str, str] = {
    "auto": "AUTO",
    "required": "ANY",
    "none": "NONE",
}

_MIME_TYPES: dict[str, str] = {
    "json": "application/json",
    "text": "text/plain",
}


class GenAIProvider(LLMProvider):
    """Adapter for Gemini's generateContent endpoint."""

    interface = "genai"

    def __init__(
        self,
        config: ProviderConfig,
        timeout: float = 60.0,
        keys: ApiKeyPool | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (config.base_url or GENAI_API_BASE).rstrip("/")
        self.keys = keys or ApiKeyPool(config.api_keys)
        self._timeout = timeout
        self._http = http

    async def chat(self, model: str, request: ChatRequest) -> LLMResponse:
        contents, system_instruction = self.convert_messages(request.messages)
        tools = self.convert_tools(request.tools)

        generation_config: dict[str, Any] = {
            "responseMimeType": _MIME_TYPES[request.output_format],
        }
        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": system_instruction}
        if tools:
            body["tools"] = tools
            if request.tool_choice:
                body["toolConfig"] = {
                    "functionCallingConfig": {"mode": _TOOL_CHOICE_MAPPING[request.tool_choice]},
                }

        url = f"{self.base_url}/models/{model}:generateContent"
        headers = {"x-goog-api-key": self.keys.pick()}

        try:
            response = await self._client().post(url, headers=headers, json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise ProviderError(f"GenAI timeout after {self._timeout}s on {model}") from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"GenAI API call failed on {model}: HTTP {e.response.status_code} {e.response.text[:300]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"GenAI API call failed on {model}: {e}") from e

        return self.parse_response(data)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ── Request conversion ────────────────────────────────────────────

    @staticmethod
    def convert_messages(messages: list[ChatMessage]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Return (contents, system_instruction_parts)."""
        contents: list[dict[str, Any]] = []
        system_parts: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                system_parts.append({"text": msg.content})
            elif msg.role == "user":
                contents.append({"role": "user", "parts": [{"text": msg.content}]})
            elif msg.role == "assistant":
                parts: list[dict[str, Any]] = []
                if msg.content:
                    parts.append({"text": msg.content})
                for tc in msg.tool_calls or []:
                    parts.append({"functionCall": {"name": tc.name, "args": tc.arguments}})
                contents.append({"role": "model", "parts": parts})
            else:
                contents.append({
                    "role": "user",
                    "parts": [{
                        "functionResponse": {
                            "name": msg.name or "unknown",
                            "response": msg.response or {},
                        },
                    }],
                })

        return contents, system_parts

    @classmethod
    def convert_tools(cls, tools: list[Tool]) -> list[dict[str, Any]]:
        if not tools:
            return []
        return [{
            "functionDeclarations": [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": cls.convert_param(tool.parameters),
                }
                for tool in tools
            ],
        }]

    @classmethod
    def convert_param(cls, param: ToolParam) -> dict[str, Any]:
        """Neutral parameter → Gemini Schema."""
        result: dict[str, Any] = {
            "type": _TYPE_MAPPING.get(param.type, "STRING"),
            "description": param.description,
        }
        if param.type == "object":
            result["properties"] = {k: cls.convert_param(v) for k, v in param.properties.items()}
            if param.required:
                result["required"] = list(param.required)
        elif param.type == "array" and param.items is not None:
            result["items"] = cls.convert_param(param.items)
        elif param.type in ("string", "number", "integer") and param.enum:
            result["enum"] = [str(v) for v in param.enum]
        return result

    # ── Response conversion ───────────────────────────────────────────

    @staticmethod
    def parse_response(data: dict[str, Any]) -> LLMResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback", {})
            raise ProviderError(f"GenAI response contained no candidates (feedback: {feedback})")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []

        texts: list[str] = []
        tool_calls: list[ToolCall] = []
        for part in parts:
            if "text" in part and not part.get("thought"):
                texts.append(part["text"])
            elif "functionCall" in part:
                call = part["functionCall"]
                call_id = call.get("id") or f"call_{uuid.uuid4().hex[:12]}"
                args = call.get("args") or {}
                if not isinstance(args, dict):
                    logger.warning(f"GenAI function call {call.get('name')} args are not an object, dropping them")
                    args = {}
                tool_calls.append(ToolCall(id=call_id, name=call.get("name") or "unknown", arguments=args))

        usage_meta = data.get("usageMetadata") or {}
        usage: dict[str, int] = {}
        if usage_meta:
            usage = {
                "prompt_tokens": usage_meta.get("promptTokenCount", 0),
                "completion_tokens": usage_meta.get("candidatesTokenCount", 0),
                "total_tokens": usage_meta.get("totalTokenCount", 0),
            }

        return LLMResponse(
            content="".join(texts) or None,
            tool_calls=tool_calls,
            finish_reason=str(candidate.get("finishReason", "STOP")).lower(),
            usage=usage,
        )
