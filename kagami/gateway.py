"""Gateway: wires every component together and runs until signalled.

Startup order:
    call log → router → prompt template → transport → registry → HTTP API
Shutdown runs in reverse.
"""

from __future__ import annotations

import asyncio
import signal

from loguru import logger

from kagami.agent.prompts.loader import PromptTemplate
from kagami.agent.registry import RoomAgentRegistry
from kagami.api.server import ApiServer
from kagami.channels.base import Transport
from kagami.channels.onebot import OneBotTransport
from kagami.config.schema import Config
from kagami.providers.router import ProviderRouter
from kagami.storage.call_log import CallLogRepository
from kagami.utils.timefmt import make_clock


class Gateway:
    """Owns the process-wide components for one config."""

    def __init__(self, config: Config, transport: Transport | None = None):
        self.config = config
        self._clock = make_clock(config.agent.timezone)
        self._stop_event = asyncio.Event()

        self.repository = CallLogRepository(config.database.path)
        self.router = ProviderRouter.from_config(config, self.repository, clock=self._clock)
        self.template = PromptTemplate(config.agent.prompt_path)
        self.transport = transport or OneBotTransport(config.napcat, clock=self._clock)
        self.registry = RoomAgentRegistry(
            router=self.router,
            transport=self.transport,
            template=self.template,
            bot_id=str(config.napcat.bot_qq),
            behavior=config.behavior,
            master=config.master,
            history_size=config.agent.history_size,
            clock=self._clock,
        )
        self.api: ApiServer | None = None
        if config.http.enable:
            self.api = ApiServer(
                self.repository,
                self.registry,
                host=config.http.host,
                port=config.http.port,
                allowed_origins=config.http.cors.allowed_origins,
                tz=config.agent.timezone,
            )
        self._transport_task: asyncio.Task | None = None

    def request_stop(self) -> None:
        self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

    async def start(self) -> None:
        self.registry.initialize([str(g) for g in self.config.napcat.groups])
        self.transport.set_dispatcher(self.registry.dispatch)
        self._transport_task = asyncio.create_task(self.transport.start())
        self._transport_task.add_done_callback(self._on_transport_exit)

        if self.api is not None:
            await self.api.start()

        logger.info(
            f"Gateway started: {len(self.registry)} room(s), "
            f"models={self.router.models}, handler={self.config.behavior.message_handler_type}"
        )

    def _on_transport_exit(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Transport stopped with an error: {exc}")
        elif not self._stop_event.is_set():
            logger.error("Transport stopped unexpectedly, shutting down")
        self._stop_event.set()

    async def stop(self) -> None:
        logger.info("Gateway shutting down...")
        if self.api is not None:
            await self.api.stop()
        await self.registry.shutdown()
        await self.transport.stop()
        if self._transport_task is not None and not self._transport_task.done():
            self._transport_task.cancel()
            await asyncio.gather(self._transport_task, return_exceptions=True)
        for client in {id(c): c for c in self.router.clients.values()}.values():
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()
        self.repository.close()
        logger.info("Gateway stopped")

    async def run(self) -> None:
        """Start, wait for SIGINT/SIGTERM (or transport exit), then stop."""
        self._install_signal_handlers()
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()
