"""ContextWindow: a room's bounded history and the transcript built from it.

The window keeps the last ``capacity`` turns, oldest first. render() turns
them into a provider-neutral transcript:

1. system:    the prompt template, rendered for this attempt
2. user:      one entry per GroupTurn, ``nickname(user_id):\\ntext``
3. assistant: one entry per BotTurn, the bot's own JSON output replayed
4. user:      a short reminder, only when the last turn is the bot speaking
"""

from __future__ import annotations

import json
from collections import deque
from typing import Any, Iterator

from kagami.agent.messages import BotTurn, GroupTurn, Message
from kagami.agent.prompts.loader import PromptContext, PromptTemplate
from kagami.providers.base import ChatMessage, ChatTranscript

DEFAULT_CAPACITY = 40

UNKNOWN_NICKNAME = "unknown"

JUST_SPOKE_REMINDER = (
    "(You sent the last message above. Nobody has answered it yet. "
    "Don't repeat yourself or keep talking unless there is a new reason to.)"
)


def format_group_turn(turn: GroupTurn) -> str:
    nickname = turn.user_nickname or UNKNOWN_NICKNAME
    return f"{nickname}({turn.user_id}):\n{turn.text}"


def format_bot_turn(turn: BotTurn) -> str:
    """Encode a BotTurn back into the response protocol.

    Thoughts first, then the chat item if the turn actually spoke.
    """
    items: list[dict[str, Any]] = [{"type": "thought", "content": t} for t in turn.thoughts]
    if turn.spoke:
        items.append({"type": "chat", "content": list(turn.reply or ())})
    return json.dumps(items, ensure_ascii=False, separators=(",", ":"))


class ContextWindow:
    """Bounded FIFO of a room's turns. Owned by exactly one RoomAgent."""

    def __init__(self, template: PromptTemplate, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.template = template
        self.capacity = capacity
        self._turns: deque[Message] = deque(maxlen=capacity)

    def append(self, message: Message) -> None:
        # deque(maxlen) drops from the left on overflow
        self._turns.append(message)

    def messages(self) -> list[Message]:
        return list(self._turns)

    def last(self) -> Message | None:
        return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._turns)

    def render(self, context: PromptContext) -> ChatTranscript:
        """Build a fresh transcript. Doesn't touch the window.

        Raises:
            PromptTemplateError: If the system prompt can't be rendered.
        """
        transcript: ChatTranscript = [
            ChatMessage(role="system", content=self.template.render(context)),
        ]

        for turn in self._turns:
            if isinstance(turn, GroupTurn):
                transcript.append(ChatMessage(role="user", content=format_group_turn(turn)))
            else:
                transcript.append(ChatMessage(role="assistant", content=format_bot_turn(turn)))

        last = self.last()
        if isinstance(last, BotTurn) and last.spoke:
            transcript.append(ChatMessage(role="user", content=JUST_SPOKE_REMINDER))

        return transcript
