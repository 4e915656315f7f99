"""When a drain round is allowed to call the model.

Two policies, picked by ``behavior.message_handler_type``:

- active:  the agent may speak whenever it has energy; each attempt spends it
- passive: the agent only considers replying when a message that arrived
           for this round @-mentions it, and energy is never touched

Each round hands the policy the group messages that arrived since the
previous round started. A mention answered (or failed) in one round does
not carry over into the next.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Sequence, Union

from kagami.agent.energy import EnergyGate
from kagami.agent.messages import GroupTurn


@dataclass(frozen=True)
class ActivePolicy:
    kind: Literal["active"] = "active"
    uses_energy: bool = True

    def should_attempt_reply(self, arrived: Sequence[GroupTurn], energy: EnergyGate) -> bool:
        return energy.can_afford()


@dataclass(frozen=True)
class PassivePolicy:
    bot_id: str
    kind: Literal["passive"] = "passive"
    uses_energy: bool = False

    def should_attempt_reply(self, arrived: Sequence[GroupTurn], energy: EnergyGate) -> bool:
        return any(turn.mentions_user(self.bot_id) for turn in arrived)


ReplyPolicy = Union[ActivePolicy, PassivePolicy]


def make_policy(kind: str, bot_id: str) -> ReplyPolicy:
    if kind == "active":
        return ActivePolicy()
    if kind == "passive":
        return PassivePolicy(bot_id=bot_id)
    raise ValueError(f"Unknown message handler type: {kind}")
