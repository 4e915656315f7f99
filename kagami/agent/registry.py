"""RoomAgentRegistry: one RoomAgent per configured room.

The transport's dispatcher points at dispatch(). Rooms are created once at
startup from the configured group list; messages for any other room are
logged and dropped.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger

from kagami.agent.context import ContextWindow
from kagami.agent.energy import EnergyGate, EnergyState
from kagami.agent.messages import GroupTurn
from kagami.agent.prompts.loader import PromptContext, PromptTemplate
from kagami.agent.reply_policy import make_policy
from kagami.agent.room_agent import RoomAgent
from kagami.agent.scheduling import AsyncioScheduler, Scheduler
from kagami.bus.events import InboundMessage, OutboundSegment
from kagami.config.schema import BehaviorConfig, MasterConfig
from kagami.utils.timefmt import Clock, now_str

if TYPE_CHECKING:
    from kagami.channels.base import Transport
    from kagami.providers.router import ProviderRouter


class RoomAgentRegistry:
    """Creates, holds and tears down the per-room agents."""

    def __init__(
        self,
        router: "ProviderRouter",
        transport: "Transport",
        template: PromptTemplate,
        bot_id: str,
        behavior: BehaviorConfig | None = None,
        master: MasterConfig | None = None,
        history_size: int = 40,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._router = router
        self._transport = transport
        self._template = template
        self.bot_id = bot_id
        self._behavior = behavior or BehaviorConfig()
        self._master = master
        self._history_size = history_size
        self._clock = clock or now_str
        self._scheduler = scheduler
        self._agents: dict[str, RoomAgent] = {}

    def initialize(self, room_ids: list[str]) -> None:
        """Create an agent for every room not already present."""
        scheduler = self._scheduler or AsyncioScheduler()
        for room_id in room_ids:
            room_id = str(room_id)
            if room_id in self._agents:
                continue
            self._agents[room_id] = self._create_agent(room_id, scheduler)
            logger.info(f"[room {room_id}] Agent ready ({self._behavior.message_handler_type})")
        logger.info(f"Registry initialized: {len(self._agents)} room(s)")

    def _create_agent(self, room_id: str, scheduler: Scheduler) -> RoomAgent:
        b = self._behavior
        state = EnergyState.full(
            max_energy=b.energy_max,
            cost_per_reply=b.energy_cost,
            recovery_rate=b.energy_recovery_rate,
            recovery_interval_seconds=b.energy_recovery_interval,
        )
        return RoomAgent(
            room_id=room_id,
            window=ContextWindow(self._template, capacity=self._history_size),
            energy=EnergyGate(state, scheduler, label=f"[room {room_id}] "),
            policy=make_policy(b.message_handler_type, self.bot_id),
            router=self._router,
            transport=self._transport,
            prompt_context=self._prompt_context,
        )

    def _prompt_context(self) -> PromptContext:
        return PromptContext(
            bot_id=self.bot_id,
            current_time=self._clock(),
            operator_id=str(self._master.qq) if self._master else None,
            operator_nickname=self._master.nickname if self._master else None,
        )

    # ── Dispatch ──────────────────────────────────────────────────────

    def dispatch(self, msg: InboundMessage) -> asyncio.Task | None:
        """Hand an inbound message to its room. Unknown rooms are dropped."""
        agent = self._agents.get(msg.room_id)
        if agent is None:
            logger.warning(f"Message for unknown room {msg.room_id}, dropping")
            return None
        return agent.enqueue(GroupTurn.from_inbound(msg))

    async def send_to_room(self, room_id: str, segments: list[OutboundSegment]) -> bool:
        """Send outside the agent loop (admin/ops use). False on failure."""
        if room_id not in self._agents:
            logger.error(f"No agent for room {room_id}")
            return False
        try:
            await self._transport.send_reply(room_id, segments)
        except Exception as e:
            logger.error(f"[room {room_id}] Direct send failed: {e}")
            return False
        return True

    # ── Introspection ─────────────────────────────────────────────────

    def get(self, room_id: str) -> RoomAgent | None:
        return self._agents.get(str(room_id))

    @property
    def room_ids(self) -> list[str]:
        return list(self._agents)

    def __len__(self) -> int:
        return len(self._agents)

    def status(self) -> list[dict[str, Any]]:
        return [agent.status() for agent in self._agents.values()]

    # ── Shutdown ──────────────────────────────────────────────────────

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Close every agent, then wait for in-flight drains.

        Drains still running after ``timeout`` seconds are cancelled.
        """
        for agent in self._agents.values():
            agent.close()

        tasks = [
            agent.drain_task for agent in self._agents.values()
            if agent.drain_task is not None and not agent.drain_task.done()
        ]
        if tasks:
            logger.info(f"Waiting for {len(tasks)} in-flight drain(s)...")
            _, still_running = await asyncio.wait(tasks, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
                logger.warning(f"Cancelled {len(still_running)} drain(s) after {timeout:g}s")

        logger.info(f"Registry shut down ({len(self._agents)} room(s))")
