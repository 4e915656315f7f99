"""RoomAgent: the per-room coalescing loop.

At most one model call is in flight per room, and no inbound message is
ever dropped. Messages go into the context window the moment they arrive;
a ``pending`` flag tells the running drain that there is something new.

    enqueue(msg)                      drain()
    ─────────────                     ───────
    window.append(msg)                while pending:
    arrived.append(msg)                   pending = False
    pending = True                        take arrived batch
    if not draining:                      policy allows?  else next round
        draining = True                   reserve energy
        start drain task                  render → router → parse
                                          refund if silent
                                          append BotTurn, send reply
                                      draining = False   (always)

A burst of messages during a slow model call therefore costs exactly one
extra round, which sees all of them. The policy judges each round by the
batch of messages that arrived since the previous round started.

Reserved energy is returned only when the model answers without a reply.
A round that raises keeps the charge.

The flag check and flag set happen in the same synchronous enqueue() call,
with no await in between, so two drains can never start for one room.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from kagami.agent.context import ContextWindow
from kagami.agent.energy import EnergyGate
from kagami.agent.messages import BotTurn, GroupTurn, Message
from kagami.agent.prompts.loader import PromptContext
from kagami.agent.reply_policy import ReplyPolicy
from kagami.agent.response_protocol import ParsedResponse, parse_response
from kagami.providers.base import ChatRequest

if TYPE_CHECKING:
    from kagami.channels.base import Transport
    from kagami.providers.router import ProviderRouter


class RoomAgent:
    """Owns one room's window and energy, and drives its model calls."""

    def __init__(
        self,
        room_id: str,
        window: ContextWindow,
        energy: EnergyGate,
        policy: ReplyPolicy,
        router: "ProviderRouter",
        transport: "Transport",
        prompt_context: Callable[[], PromptContext],
    ) -> None:
        self.room_id = room_id
        self.window = window
        self.energy = energy
        self.policy = policy
        self._router = router
        self._transport = transport
        self._prompt_context = prompt_context

        self._draining = False
        self._pending = False
        self._arrived: list[GroupTurn] = []
        self._drain_task: asyncio.Task | None = None
        self._closed = False

        self._tag = f"[room {room_id}] "

    # ── Intake ────────────────────────────────────────────────────────

    def enqueue(self, message: Message) -> asyncio.Task | None:
        """Record a message and make sure a drain will see it.

        Returns the drain task when this call started one, None when a
        drain was already running (it will pick the message up).
        """
        self.window.append(message)
        self._pending = True

        if self._closed:
            logger.debug(f"{self._tag}Closed, message recorded without a reply round")
            return None
        if isinstance(message, GroupTurn):
            self._arrived.append(message)
        if self._draining:
            return None

        self._draining = True
        self._drain_task = asyncio.create_task(self._run_drain())
        return self._drain_task

    async def _run_drain(self) -> None:
        try:
            await self.drain()
        except Exception as e:
            logger.exception(f"{self._tag}Drain failed: {e}")

    # ── Drain loop ────────────────────────────────────────────────────

    async def drain(self) -> None:
        """Run rounds until nothing new has arrived. Always ends Idle."""
        self._draining = True
        try:
            while self._pending:
                self._pending = False
                arrived, self._arrived = self._arrived, []
                await self._round(arrived)
        finally:
            self._draining = False

    async def _round(self, arrived: list[GroupTurn]) -> None:
        if not self.policy.should_attempt_reply(arrived, self.energy):
            if self.policy.uses_energy:
                logger.info(f"{self._tag}Not enough energy to reply ({self.energy.status()})")
            else:
                logger.debug(f"{self._tag}Not mentioned, staying quiet")
            return

        reserved = False
        if self.policy.uses_energy:
            if not self.energy.consume():
                logger.info(f"{self._tag}Energy ran out before reserving ({self.energy.status()})")
                return
            reserved = True

        parsed = await self._generate()

        if reserved and not parsed.has_reply:
            self.energy.refund()
            logger.info(f"{self._tag}Model chose not to reply, energy refunded ({self.energy.status()})")

        if parsed.thoughts:
            logger.debug(f"{self._tag}Thoughts: " + " | ".join(parsed.thoughts))

        turn = BotTurn(thoughts=parsed.thoughts, reply=parsed.reply)
        self.window.append(turn)

        if turn.spoke:
            # A send failure propagates; the BotTurn stays in history
            await self._transport.send_reply(self.room_id, list(turn.reply or ()))
            logger.info(f"{self._tag}Replied with {len(turn.reply or ())} segment(s) (energy {self.energy.status()})")

    async def _generate(self) -> ParsedResponse:
        transcript = self.window.render(self._prompt_context())
        request = ChatRequest(messages=transcript, tools=[], output_format="json")
        response = await self._router.call_with_fallback(request)
        return parse_response(response.content)

    # ── Introspection / lifecycle ─────────────────────────────────────

    @property
    def draining(self) -> bool:
        return self._draining

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def drain_task(self) -> asyncio.Task | None:
        return self._drain_task

    def status(self) -> dict[str, Any]:
        return {
            "room_id": self.room_id,
            "draining": self._draining,
            "pending": self._pending,
            "energy": self.energy.status(),
            "history": len(self.window),
            "policy": self.policy.kind,
        }

    def close(self) -> None:
        """Stop energy recovery and refuse new rounds. In-flight work is left alone."""
        self._closed = True
        self.energy.close()
