"""Messaging transports."""

from kagami.channels.base import Transport, TransportError
from kagami.channels.mock import MockTransport
from kagami.channels.onebot import OneBotTransport

__all__ = ["MockTransport", "OneBotTransport", "Transport", "TransportError"]
