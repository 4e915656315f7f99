"""Transport interface: where messages come from and replies go to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from loguru import logger

from kagami.bus.events import InboundMessage, OutboundSegment

Dispatcher = Callable[[InboundMessage], None]


class TransportError(Exception):
    """A send or query could not be completed (disconnected, action failed)."""


class Transport(ABC):
    """A messaging platform connection.

    Inbound messages are handed to the dispatcher once each, already
    transcribed. Outbound replies are lists of segments, sent as-is.
    """

    name: str = "base"

    def __init__(self) -> None:
        self._dispatcher: Dispatcher | None = None
        self._running = False

    def set_dispatcher(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    def _dispatch(self, msg: InboundMessage) -> None:
        if self._dispatcher is None:
            logger.warning(f"{self.name}: message received but no dispatcher is set, dropping")
            return
        self._dispatcher(msg)

    @abstractmethod
    async def start(self) -> None:
        """Connect and start delivering messages. May run until stop()."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def send_reply(self, room_id: str, segments: list[OutboundSegment]) -> None:
        """Send one reply into a room.

        Raises:
            TransportError: If the message could not be sent.
        """
        ...

    @property
    def is_running(self) -> bool:
        return self._running
