"""Event types shared between transports and the agent."""

from kagami.bus.events import InboundMessage, OutboundSegment

__all__ = ["InboundMessage", "OutboundSegment"]
