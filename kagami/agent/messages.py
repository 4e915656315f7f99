"""History entries kept in a room's context window.

A room's history is a sequence of two kinds of turns:

- GroupTurn: something a member of the group said, transcribed to text
- BotTurn:   what the agent decided, including decisions to stay silent

A BotTurn without a reply is still history. The model must see its own
silence, otherwise it reads the next transcript as if it never got a turn.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from kagami.bus.events import InboundMessage, OutboundSegment


@dataclass(frozen=True)
class GroupTurn:
    """An inbound group message."""

    id: str
    user_id: str
    text: str
    timestamp: str
    user_nickname: str | None = None
    mentions: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_inbound(cls, msg: InboundMessage) -> "GroupTurn":
        return cls(
            id=msg.message_id,
            user_id=msg.sender_id,
            text=msg.rendered_text,
            timestamp=msg.timestamp,
            user_nickname=msg.sender_nickname,
            mentions=tuple(msg.mentions),
        )

    def mentions_user(self, user_id: str) -> bool:
        return user_id in self.mentions


@dataclass(frozen=True)
class BotTurn:
    """The agent's decision for one drain round."""

    thoughts: tuple[str, ...] = ()
    reply: tuple[OutboundSegment, ...] | None = None

    @property
    def spoke(self) -> bool:
        """True when this turn carries a non-empty reply."""
        return bool(self.reply)


Message = Union[GroupTurn, BotTurn]
