"""Provider-neutral request/response types and the adapter interface.

Adapters translate these shapes into one vendor's wire format and back.
The router and the rest of the agent only ever see the neutral forms.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Union

Role = Literal["system", "user", "assistant", "tool"]
OutputFormat = Literal["json", "text"]
ToolChoice = Literal["auto", "required", "none"]
ParamType = Literal["string", "number", "integer", "boolean", "array", "object"]


class ProviderError(Exception):
    """A single adapter call failed (network, vendor error, bad payload)."""


# ── Tools ─────────────────────────────────────────────────────────────


@dataclass
class ToolParam:
    """A JSON-schema-like parameter description, nested for arrays/objects."""

    type: ParamType
    description: str = ""
    enum: list[Any] | None = None
    items: "ToolParam | None" = None
    properties: dict[str, "ToolParam"] = field(default_factory=dict)
    required: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum is not None:
            data["enum"] = list(self.enum)
        if self.type == "array" and self.items is not None:
            data["items"] = self.items.to_dict()
        if self.type == "object":
            data["properties"] = {k: v.to_dict() for k, v in self.properties.items()}
            if self.required:
                data["required"] = list(self.required)
        return data


@dataclass
class Tool:
    """A function the model may call. ``parameters`` is always an object."""

    name: str
    description: str
    parameters: ToolParam

    def __post_init__(self) -> None:
        if self.parameters.type != "object":
            raise ValueError(f"Tool {self.name!r} parameters must be an object schema")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters.to_dict(),
        }


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "function": {"name": self.name, "arguments": self.arguments}}


# ── Messages ──────────────────────────────────────────────────────────


@dataclass
class ChatMessage:
    """One transcript entry.

    ``content`` is used by system/user/assistant entries. Assistant entries
    may carry ``tool_calls``; tool entries carry ``tool_call_id``, ``name``
    and a structured ``response`` instead of content.
    """

    role: Role
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    response: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.role == "tool":
            data: dict[str, Any] = {
                "role": "tool",
                "toolCallId": self.tool_call_id,
                "response": self.response or {},
            }
            if self.name:
                data["name"] = self.name
            return data
        data = {"role": self.role, "content": [{"type": "text", "value": self.content}]}
        if self.role == "assistant" and self.tool_calls:
            data["toolCalls"] = [tc.to_dict() for tc in self.tool_calls]
        return data


ChatTranscript = list[ChatMessage]


@dataclass
class ChatRequest:
    """Everything an adapter needs for one completion."""

    messages: ChatTranscript
    tools: list[Tool] = field(default_factory=list)
    output_format: OutputFormat = "json"
    tool_choice: ToolChoice | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "messages": [m.to_dict() for m in self.messages],
            "tools": [t.to_dict() for t in self.tools],
            "outputFormat": self.output_format,
        }
        if self.tool_choice:
            data["toolChoice"] = self.tool_choice
        return data


@dataclass
class LLMResponse:
    """Neutral completion result."""

    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


# ── Attempt outcomes ──────────────────────────────────────────────────


@dataclass(frozen=True)
class Success:
    response: LLMResponse


@dataclass(frozen=True)
class EmptyContent:
    """The call went through but produced neither text nor tool calls."""


@dataclass(frozen=True)
class Failure:
    reason: str


AttemptOutcome = Union[Success, EmptyContent, Failure]


# ── Adapter interface ─────────────────────────────────────────────────


class LLMProvider(ABC):
    """One vendor's chat completion API."""

    interface: str = ""

    @abstractmethod
    async def chat(self, model: str, request: ChatRequest) -> LLMResponse:
        """Run one completion.

        Raises:
            ProviderError: On any vendor, network or timeout failure.
        """
        ...
