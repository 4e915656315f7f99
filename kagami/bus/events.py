"""Transport-facing event types.

InboundMessage is what a transport hands to the gateway once per received
group message. Outbound replies are plain lists of segments (OneBot segment
dicts such as ``{"type": "text", "data": {"text": "hi"}}``) and are passed to
the transport untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# A single outbound message segment, opaque to the core.
OutboundSegment = dict[str, Any]


@dataclass(frozen=True)
class InboundMessage:
    """A received group message, already transcribed to natural language."""

    room_id: str
    sender_id: str
    rendered_text: str
    message_id: str
    sender_nickname: str | None = None
    mentions: tuple[str, ...] = field(default_factory=tuple)
    timestamp: str = ""
