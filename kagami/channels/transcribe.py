"""Turn raw OneBot message segments into the text the model reads.

- text segments are kept verbatim
- ``at`` segments become ``@nickname(user_id) ``
- ``reply`` segments become a block quote of the referenced message::

      > nickname(user_id)：
      > first line
      > second line

  followed by a blank line. Replies inside a quoted message are ignored,
  so quotes never nest. A reply whose original can't be fetched is dropped.

Everything else (images, faces, files) is ignored for now.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

UNKNOWN_NICKNAME = "unknown"

# Full-width colon, as NapCat clients display quote headers
QUOTE_HEADER_COLON = "："

NicknameLookup = Callable[[str], Awaitable[str | None]]
MessageLookup = Callable[[str], Awaitable[dict[str, Any] | None]]


async def transcribe_segments(
    segments: list[dict[str, Any]],
    get_nickname: NicknameLookup,
    get_message: MessageLookup,
) -> str:
    """Render a received message.

    ``get_message`` returns a OneBot ``get_msg`` payload (``sender`` and
    ``message``) or None when the message can't be found.
    """
    parts: list[str] = []
    for segment in segments:
        seg_type = segment.get("type")
        data = segment.get("data") or {}

        if seg_type == "reply" and data.get("id") is not None:
            detail = await get_message(str(data["id"]))
            if detail:
                parts.append(await _quote(detail, get_nickname))
        else:
            rendered = await _render_inline(seg_type, data, get_nickname)
            if rendered:
                parts.append(rendered)
    return "".join(parts)


async def _render_inline(seg_type: Any, data: dict[str, Any], get_nickname: NicknameLookup) -> str:
    if seg_type == "text":
        return data.get("text") or ""
    if seg_type == "at" and data.get("qq"):
        user_id = str(data["qq"])
        if user_id == "all":
            return "@all "
        nickname = await get_nickname(user_id)
        return f"@{nickname or UNKNOWN_NICKNAME}({user_id}) "
    return ""


async def _quote(detail: dict[str, Any], get_nickname: NicknameLookup) -> str:
    sender = detail.get("sender") or {}
    nickname = sender.get("nickname") or sender.get("card") or UNKNOWN_NICKNAME
    user_id = sender.get("user_id", "")

    body_parts: list[str] = []
    for segment in detail.get("message") or []:
        # Quotes never nest
        if segment.get("type") == "reply":
            continue
        body_parts.append(await _render_inline(segment.get("type"), segment.get("data") or {}, get_nickname))
    body = "".join(body_parts)

    quoted = "\n".join(f"> {line}" for line in body.split("\n"))
    return f"> {nickname}({user_id}){QUOTE_HEADER_COLON}\n{quoted}\n\n"


def extract_mentions(segments: list[dict[str, Any]]) -> tuple[str, ...]:
    """User ids @-mentioned in a message, in order, without duplicates."""
    seen: list[str] = []
    for segment in segments:
        if segment.get("type") != "at":
            continue
        qq = (segment.get("data") or {}).get("qq")
        if qq is None:
            continue
        user_id = str(qq)
        if user_id not in seen:
            seen.append(user_id)
    return tuple(seen)


def format_for_display(segments: list[dict[str, Any]]) -> str:
    """Compact one-line rendering for log output. No lookups."""
    parts: list[str] = []
    for segment in segments:
        seg_type = segment.get("type")
        data = segment.get("data") or {}
        if seg_type == "text":
            parts.append(data.get("text") or "")
        elif seg_type == "at":
            parts.append(f"@{data.get('qq', '?')}")
        elif seg_type == "reply":
            parts.append(f"[reply:{data.get('id', '?')}]")
        else:
            parts.append(f"[{seg_type}]")
    return "".join(parts)
