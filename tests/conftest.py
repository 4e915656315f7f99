"""Shared fixtures: a scripted router and a RoomAgent factory."""

import asyncio
from pathlib import Path

import pytest

from kagami.agent.context import ContextWindow
from kagami.agent.energy import EnergyGate, EnergyState
from kagami.agent.messages import GroupTurn
from kagami.agent.prompts.loader import PromptContext, PromptTemplate
from kagami.agent.reply_policy import ActivePolicy
from kagami.agent.room_agent import RoomAgent
from kagami.agent.scheduling import ManualScheduler
from kagami.channels.mock import MockTransport
from kagami.providers.base import ChatRequest, LLMResponse

TEST_PROMPT = "You are {bot_id}. Now: {current_time}.\n{operator_block}"

SILENT = '[{"type": "thought", "content": "nothing to add"}]'
SPEAK = '[{"type": "thought", "content": "say hi"}, {"type": "chat", "content": [{"type": "text", "data": {"text": "hi"}}]}]'


class ScriptedRouter:
    """Stands in for ProviderRouter.

    Pops one scripted output per call: a string becomes the response
    content, an exception is raised. Set ``gate`` to hold calls open.
    """

    def __init__(self, outputs: list | None = None):
        self.outputs = list(outputs or [])
        self.calls: list[ChatRequest] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.started = asyncio.Event()
        self.gate: asyncio.Event | None = None

    async def call_with_fallback(self, request: ChatRequest) -> LLMResponse:
        self.calls.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            out = self.outputs.pop(0) if self.outputs else SILENT
            if isinstance(out, BaseException):
                raise out
            return LLMResponse(content=out)
        finally:
            self.in_flight -= 1


@pytest.fixture
def prompt_file(tmp_path: Path) -> Path:
    path = tmp_path / "system.txt"
    path.write_text(TEST_PROMPT, encoding="utf-8")
    return path


@pytest.fixture
def template(prompt_file: Path) -> PromptTemplate:
    return PromptTemplate(prompt_file)


@pytest.fixture
def make_agent(template: PromptTemplate):
    """Factory: make_agent(router, ...) -> (agent, transport, scheduler)."""

    def _make(
        router,
        transport: MockTransport | None = None,
        max_energy: float = 100,
        cost: float = 1,
        recovery_rate: float = 5,
        capacity: int = 40,
        policy=None,
    ):
        scheduler = ManualScheduler()
        transport = transport or MockTransport()
        state = EnergyState.full(max_energy, cost, recovery_rate, 60)
        agent = RoomAgent(
            room_id="1000",
            window=ContextWindow(template, capacity=capacity),
            energy=EnergyGate(state, scheduler),
            policy=policy or ActivePolicy(),
            router=router,
            transport=transport,
            prompt_context=lambda: PromptContext(bot_id="10001", current_time="2025-01-01 12:00:00"),
        )
        return agent, transport, scheduler

    return _make


def group_turn(text: str, user_id: str = "42", nickname: str | None = "Alice", msg_id: str = "1",
               mentions: tuple[str, ...] = ()) -> GroupTurn:
    return GroupTurn(
        id=msg_id,
        user_id=user_id,
        text=text,
        timestamp="2025-01-01 12:00:00",
        user_nickname=nickname,
        mentions=mentions,
    )
