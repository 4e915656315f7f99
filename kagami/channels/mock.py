"""Mock transport for tests and local runs.

Injects messages through the same dispatcher path a real transport uses
and captures outbound replies for assertion.

Usage:
    mock = MockTransport()
    registry = RoomAgentRegistry(..., transport=mock)
    mock.set_dispatcher(registry.dispatch)
    mock.inject_message("hello", room_id="123", sender_id="42")
    reply = await mock.wait_for_reply(timeout=5.0)
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass

from loguru import logger

from kagami.bus.events import InboundMessage, OutboundSegment
from kagami.channels.base import Transport, TransportError


@dataclass(frozen=True)
class SentReply:
    room_id: str
    segments: list[OutboundSegment]


class MockTransport(Transport):
    """Programmatic transport. Set ``fail_sends`` to simulate send errors."""

    name = "mock"

    def __init__(self) -> None:
        super().__init__()
        self._replies: list[SentReply] = []
        self._reply_event = asyncio.Event()
        self._stopped = asyncio.Event()
        self.fail_sends = False
        self.send_delay: float = 0.0

    # ── Lifecycle ─────────────────────────────────────────

    async def start(self) -> None:
        """Runs until stop(), like a real connection loop."""
        self._running = True
        self._stopped.clear()
        logger.debug("MockTransport started")
        await self._stopped.wait()

    async def stop(self) -> None:
        self._running = False
        self._stopped.set()
        logger.debug("MockTransport stopped")

    async def send_reply(self, room_id: str, segments: list[OutboundSegment]) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_sends:
            raise TransportError(f"Mock send to {room_id} failed")
        self._replies.append(SentReply(room_id=room_id, segments=list(segments)))
        self._reply_event.set()

    # ── Message injection ─────────────────────────────────

    def inject_message(
        self,
        text: str,
        room_id: str = "1000",
        sender_id: str = "42",
        *,
        nickname: str | None = None,
        message_id: str | None = None,
        mentions: tuple[str, ...] = (),
        timestamp: str = "2025-01-01 12:00:00",
    ) -> InboundMessage:
        """Deliver one message to the dispatcher. Returns what was delivered."""
        msg = InboundMessage(
            room_id=room_id,
            sender_id=sender_id,
            sender_nickname=nickname,
            rendered_text=text,
            message_id=message_id or uuid.uuid4().hex[:8],
            mentions=tuple(mentions),
            timestamp=timestamp,
        )
        self._dispatch(msg)
        return msg

    # ── Reply capture ─────────────────────────────────────

    async def wait_for_reply(self, timeout: float = 5.0) -> SentReply | None:
        """Wait for the next reply sent after this call. None on timeout."""
        start_count = len(self._replies)
        self._reply_event.clear()
        try:
            await asyncio.wait_for(self._reply_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        if len(self._replies) > start_count:
            return self._replies[start_count]
        return None

    @property
    def replies(self) -> list[SentReply]:
        return list(self._replies)

    def clear_replies(self) -> None:
        self._replies.clear()
        self._reply_event.clear()
