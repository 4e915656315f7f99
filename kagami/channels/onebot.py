"""OneBot v11 transport over a forward websocket (NapCat).

One websocket carries both directions: events pushed by NapCat, and
action calls we make (``send_group_msg``, ``get_msg``, ...) whose
responses come back tagged with the ``echo`` we sent.

Inbound group messages from configured groups are transcribed and handed
to the dispatcher in arrival order. Transcription itself calls actions, so
it runs in a separate worker task and never blocks the receive loop.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets
from loguru import logger

from kagami.bus.events import InboundMessage, OutboundSegment
from kagami.channels.base import Transport, TransportError
from kagami.channels.transcribe import extract_mentions, format_for_display, transcribe_segments
from kagami.config.schema import NapcatConfig
from kagami.utils.timefmt import Clock, now_str

ACTION_TIMEOUT: float = 15.0
MAX_RECONNECT_DELAY: float = 60.0


class OneBotTransport(Transport):
    """NapCat websocket client."""

    name = "onebot"

    def __init__(self, config: NapcatConfig, clock: Clock | None = None):
        super().__init__()
        self.config = config
        self._clock = clock or now_str
        self._groups = {str(g) for g in config.groups}
        self._ws: Any = None
        self._pending_actions: dict[str, asyncio.Future] = {}
        self._inbound: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._inbound_worker: asyncio.Task | None = None
        self._consecutive_failures: int = 0

    # ── Lifecycle ─────────────────────────────────────────

    async def start(self) -> None:
        """Connect and keep the connection up until stop()."""
        self._running = True
        self._inbound_worker = asyncio.create_task(self._process_inbound())
        url = self._connect_url()
        reconnection = self.config.reconnection

        while self._running:
            try:
                logger.info(f"Connecting to NapCat at {self.config.base_url}...")
                async with websockets.connect(url) as ws:
                    self._ws = ws
                    self._consecutive_failures = 0
                    logger.info("NapCat connected")
                    await self._receive_loop()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"NapCat connection error: {e}")
            finally:
                self._on_disconnect()

            if not self._running:
                break
            if not reconnection.enable:
                logger.error("NapCat disconnected and reconnection is disabled")
                break

            self._consecutive_failures += 1
            if self._consecutive_failures > reconnection.attempts:
                logger.error(f"NapCat: giving up after {reconnection.attempts} reconnect attempts")
                break
            # Exponential backoff from the configured delay, capped
            delay = min(reconnection.delay * (2 ** (self._consecutive_failures - 1)), MAX_RECONNECT_DELAY)
            logger.info(f"Reconnecting in {delay:g}s (attempt {self._consecutive_failures}/{reconnection.attempts})...")
            await asyncio.sleep(delay)

        self._running = False
        if self._inbound_worker is not None:
            self._inbound_worker.cancel()
            self._inbound_worker = None

    async def stop(self) -> None:
        self._running = False
        if self._inbound_worker is not None:
            self._inbound_worker.cancel()
            self._inbound_worker = None
        if self._ws is not None:
            await self._ws.close()
        self._on_disconnect()
        logger.info("NapCat transport stopped")

    def _connect_url(self) -> str:
        if not self.config.access_token:
            return self.config.base_url
        parts = urlsplit(self.config.base_url)
        query = "&".join(q for q in (parts.query, urlencode({"access_token": self.config.access_token})) if q)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))

    def _on_disconnect(self) -> None:
        self._ws = None
        for future in self._pending_actions.values():
            if not future.done():
                future.set_exception(TransportError("Connection closed before the action completed"))
        self._pending_actions.clear()

    # ── Receive ───────────────────────────────────────────

    async def _receive_loop(self) -> None:
        async for raw in self._ws:
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from NapCat: {str(raw)[:100]}")
                continue
            self.handle_frame(data)

    def handle_frame(self, data: dict[str, Any]) -> None:
        """Route one decoded frame: action response or event."""
        echo = data.get("echo")
        if echo is not None:
            future = self._pending_actions.pop(str(echo), None)
            if future is not None and not future.done():
                future.set_result(data)
            return

        if data.get("post_type") == "message" and data.get("message_type") == "group":
            self._inbound.put_nowait(data)
        elif data.get("post_type") == "meta_event":
            pass  # heartbeats and lifecycle
        else:
            logger.debug(f"NapCat event ignored: {data.get('post_type')}/{data.get('notice_type') or data.get('message_type')}")

    async def _process_inbound(self) -> None:
        while True:
            event = await self._inbound.get()
            await self._handle_group_message(event)

    async def _handle_group_message(self, event: dict[str, Any]) -> None:
        group_id = str(event.get("group_id"))
        if group_id not in self._groups:
            return

        try:
            segments = event.get("message") or []
            if isinstance(segments, str):
                # CQ-string format: treat as plain text
                segments = [{"type": "text", "data": {"text": segments}}]

            user_id = str(event.get("user_id"))
            sender = event.get("sender") or {}
            nickname = await self.get_nickname(group_id, user_id) or sender.get("card") or sender.get("nickname")

            text = await transcribe_segments(
                segments,
                get_nickname=lambda uid: self.get_nickname(group_id, uid),
                get_message=self.get_message,
            )

            logger.info(f"[room {group_id}] {nickname or user_id}({user_id}): {format_for_display(segments)}")

            self._dispatch(InboundMessage(
                room_id=group_id,
                sender_id=user_id,
                sender_nickname=nickname,
                rendered_text=text,
                message_id=str(event.get("message_id")),
                mentions=extract_mentions(segments),
                timestamp=self._clock(),
            ))
        except Exception as e:
            logger.exception(f"[room {group_id}] Failed to handle inbound message: {e}")

    # ── Actions ───────────────────────────────────────────

    async def call_action(self, action: str, params: dict[str, Any], timeout: float = ACTION_TIMEOUT) -> Any:
        """Call a OneBot action and return its ``data``.

        Raises:
            TransportError: If disconnected, timed out, or NapCat reports failure.
        """
        if self._ws is None:
            raise TransportError(f"Not connected, cannot call {action}")

        echo = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending_actions[echo] = future
        try:
            await self._ws.send(json.dumps({"action": action, "params": params, "echo": echo}, ensure_ascii=False))
            response = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"{action} timed out after {timeout}s") from e
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"{action} failed: {e}") from e
        finally:
            self._pending_actions.pop(echo, None)

        if response.get("status") != "ok" or response.get("retcode", 0) != 0:
            raise TransportError(
                f"{action} failed: retcode={response.get('retcode')} {response.get('message') or response.get('wording') or ''}".rstrip()
            )
        return response.get("data")

    async def send_group_msg(self, group_id: str, segments: list[OutboundSegment]) -> None:
        try:
            await self.call_action("send_group_msg", {"group_id": int(group_id), "message": segments})
        except TransportError as e:
            logger.error(f"[room {group_id}] Send failed: {e}")
            raise

    async def send_reply(self, room_id: str, segments: list[OutboundSegment]) -> None:
        await self.send_group_msg(room_id, segments)

    async def get_nickname(self, group_id: str, user_id: str) -> str | None:
        """Member nickname (or group card). None if it can't be looked up."""
        try:
            info = await self.call_action(
                "get_group_member_info", {"group_id": int(group_id), "user_id": int(user_id)},
            )
        except (TransportError, ValueError) as e:
            logger.debug(f"Nickname lookup failed for {user_id} in {group_id}: {e}")
            return None
        info = info or {}
        return info.get("nickname") or info.get("card") or None

    async def get_message(self, message_id: str) -> dict[str, Any] | None:
        """A message by id, as returned by ``get_msg``. None if unavailable."""
        try:
            return await self.call_action("get_msg", {"message_id": int(message_id)})
        except (TransportError, ValueError) as e:
            logger.debug(f"Message lookup failed for {message_id}: {e}")
            return None

