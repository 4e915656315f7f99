"""Per-room agent: context window, energy gate, coalescing loop."""

from kagami.agent.context import ContextWindow
from kagami.agent.energy import EnergyGate, EnergyState
from kagami.agent.messages import BotTurn, GroupTurn, Message
from kagami.agent.registry import RoomAgentRegistry
from kagami.agent.reply_policy import ActivePolicy, PassivePolicy, ReplyPolicy, make_policy
from kagami.agent.response_protocol import ParsedResponse, parse_response
from kagami.agent.room_agent import RoomAgent

__all__ = [
    "ActivePolicy",
    "BotTurn",
    "ContextWindow",
    "EnergyGate",
    "EnergyState",
    "GroupTurn",
    "Message",
    "ParsedResponse",
    "PassivePolicy",
    "ReplyPolicy",
    "RoomAgent",
    "RoomAgentRegistry",
    "make_policy",
    "parse_response",
]
