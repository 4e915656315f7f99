"""Decode the model's raw output into thoughts and an optional reply.

The model is asked for a JSON array of items::

    [
      {"type": "thought", "content": "..."},
      {"type": "chat", "content": [<OneBot segments>]}
    ]

Parsing never raises. Output that isn't JSON, or isn't an array, yields an
empty result, which the room treats the same as the model choosing to stay
silent. The raw text is already in the call log for anyone who needs to
see what went wrong.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from kagami.bus.events import OutboundSegment


@dataclass(frozen=True)
class ParsedResponse:
    """thoughts in output order; reply from the first chat item, if any."""

    thoughts: tuple[str, ...] = ()
    reply: tuple[OutboundSegment, ...] | None = None
    diagnostics: tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_reply(self) -> bool:
        """True only for a non-empty reply. An empty chat item is not speech."""
        return bool(self.reply)


EMPTY_RESPONSE = ParsedResponse()


def parse_response(raw: str | None) -> ParsedResponse:
    if not raw:
        return EMPTY_RESPONSE

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.debug(f"Model output is not JSON: {raw[:200]!r}")
        return EMPTY_RESPONSE

    if not isinstance(data, list):
        logger.debug(f"Model output is JSON but not an array ({type(data).__name__})")
        return EMPTY_RESPONSE

    thoughts: list[str] = []
    reply: tuple[OutboundSegment, ...] | None = None
    chat_seen = False
    diagnostics: list[str] = []

    for index, item in enumerate(data):
        kind = item.get("type") if isinstance(item, dict) else None

        if kind == "thought":
            content = item.get("content")
            if isinstance(content, str):
                thoughts.append(content)
            else:
                diagnostics.append(f"item {index}: thought content is not a string, skipped")

        elif kind == "chat":
            if chat_seen:
                diagnostics.append(f"item {index}: extra chat item discarded, only the first is kept")
                continue
            # The first chat item owns the reply slot even when malformed
            chat_seen = True
            reply = _as_segments(item.get("content"))
            if reply is None:
                diagnostics.append(f"item {index}: chat content is not a list of segments, reply left empty")

        else:
            diagnostics.append(f"item {index}: unrecognized item, skipped")

    for note in diagnostics:
        if "extra chat item" in note:
            logger.warning(f"Response protocol: {note}")
        else:
            logger.debug(f"Response protocol: {note}")

    return ParsedResponse(thoughts=tuple(thoughts), reply=reply, diagnostics=tuple(diagnostics))


def _as_segments(content: Any) -> tuple[OutboundSegment, ...] | None:
    if not isinstance(content, list):
        return None
    if not all(isinstance(seg, dict) for seg in content):
        return None
    return tuple(content)
