"""Bot wiring and lifecycle.

Inbound flow::

    transport --on_event--> ConnectionManager --emit--> EventBus
        EventBus -> ChatQueue -> MessageRouter -> RuleEngine, CommandDispatcher
        EventBus -> StatusHandler

Both consumers read the live transport from the ConnectionManager at
handling time, so a message queued across a reconnect is answered on the
new session (or dropped if there is none).
"""

from __future__ import annotations

import asyncio
import os
import signal

from danuu.chat_queue import ChatQueue
from danuu.commands import CommandDispatcher
from danuu.config import Settings, get_settings
from danuu.connection import ConnectionManager
from danuu.event_bus import ConnectionStateChanged, EventBus
from danuu.logger import logger, set_level
from danuu.media import MediaPipeline
from danuu.router import MessageRouter
from danuu.rules import RuleEngine
from danuu.session_store import SessionStore
from danuu.status_handler import StatusHandler
from danuu.types import InboundMessage, MediaSource, TransportFactory

SHUTDOWN_GRACE_SECONDS = 12


class DanuuApp:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        media_source: MediaSource | None = None,
    ) -> None:
        s = settings or get_settings()
        self.settings = s

        if transport_factory is None:
            from danuu.transport import whatsapp_transport_factory

            transport_factory = whatsapp_transport_factory(s)
        if media_source is None:
            from danuu.media_source import YtDlpSource

            media_source = YtDlpSource(audio_format=s.media.audio_format)

        self.bus = EventBus()
        self.store = SessionStore(s.store_dir)
        self.media = MediaPipeline(media_source, s)
        self.commands = CommandDispatcher(self.media, s)
        self.router = MessageRouter(RuleEngine(s.rules), self.commands, s)
        self.status = StatusHandler(s.status)
        self.queue = ChatQueue(self._route)
        self.connection = ConnectionManager(self.store, transport_factory, self.bus, s)
        self.connection.on_teardown(self.media.cancel_all)

        self.bus.subscribe(InboundMessage, self._on_message)
        self.bus.subscribe(InboundMessage, self._on_status)
        self.bus.subscribe(ConnectionStateChanged, self._on_state_changed)
        self._shutting_down = False

    # ------------------------------------------------------------------
    # Event consumers
    # ------------------------------------------------------------------

    async def _on_message(self, message: InboundMessage) -> None:
        self.queue.enqueue(message)

    async def _route(self, message: InboundMessage) -> None:
        transport = self.connection.transport
        if transport is None:
            logger.info("No live session, dropping message", chat_id=message.chat_id)
            return
        await self.router.handle(message, transport)

    async def _on_status(self, message: InboundMessage) -> None:
        transport = self.connection.transport
        if transport is not None:
            await self.status.handle(message, transport)

    async def _on_state_changed(self, event: ConnectionStateChanged) -> None:
        logger.debug(
            "Connection state changed",
            previous=event.previous.value,
            current=event.current.value,
            reason=event.reason,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _shutdown(self, sig_name: str) -> None:
        """Graceful shutdown handler. Second signal force-exits."""
        if self._shutting_down:
            logger.info("Force shutdown")
            os._exit(1)
        self._shutting_down = True
        logger.info("Shutdown signal received", signal=sig_name)

        # Hard-exit watchdog in case a disconnect blocks indefinitely.
        loop = asyncio.get_running_loop()
        loop.call_later(SHUTDOWN_GRACE_SECONDS, lambda: os._exit(1))

        await self.queue.shutdown()
        await self.connection.stop()

    async def run(self) -> None:
        """Main entry point. Returns when the session ends for good."""
        set_level(self.settings.logging.level)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda s=sig: asyncio.ensure_future(self._shutdown(s.name)),
            )

        logger.info(
            "Starting bot",
            name=self.settings.bot.name,
            prefix=self.settings.bot.prefix,
            store_dir=str(self.store.store_dir),
        )
        await self.connection.start()
        await self.connection.wait_closed()

        await self.queue.shutdown()
        await self.media.cancel_all()
        logger.info("Bot stopped", state=self.connection.state.value)
