"""Session lifecycle: connect, pair, reconnect with backoff, terminal logout.

The ConnectionManager is the only component that creates, replaces or
tears down a transport session. Everything else gets the live transport
per call via :attr:`ConnectionManager.transport` and must not hold on to it.

State machine::

    CONNECTING --open--> OPEN
    CONNECTING/OPEN --close(logged out)--> CLOSED_TERMINAL
    CONNECTING/OPEN --close(other)--> CLOSED_RECONNECTABLE --backoff--> CONNECTING

Updates from a session that has since been replaced are ignored, and a
second close while a reconnect is pending does not schedule another one.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from danuu.config import Settings, get_settings
from danuu.event_bus import ConnectionStateChanged, EventBus
from danuu.logger import logger
from danuu.pairing import render_qr
from danuu.session_store import SessionStore
from danuu.types import (
    ConnectionState,
    ConnectionUpdate,
    InboundEvent,
    InboundMessage,
    Transport,
    TransportFactory,
    TransportState,
)
from danuu.utils import best_effort, create_background_task

type TeardownHook = Callable[[], Awaitable[None] | None]


def compute_backoff(attempt: int, base: float, cap: float) -> float:
    """Delay before reconnect *attempt* (1-based): base, 2*base, 4*base, ... capped."""
    if attempt < 1 or base <= 0:
        return 0.0
    return min(cap, base * 2 ** (attempt - 1))


class ConnectionManager:
    def __init__(
        self,
        store: SessionStore,
        transport_factory: TransportFactory,
        bus: EventBus,
        settings: Settings | None = None,
        *,
        show_pairing_code: Callable[[str], None] | None = None,
    ) -> None:
        self._store = store
        self._factory = transport_factory
        self._bus = bus
        self._settings = settings or get_settings()
        self._show_pairing_code = show_pairing_code or _print_pairing_code

        self._state = ConnectionState.CLOSED_TERMINAL
        self._transport: Transport | None = None
        self._generation = 0
        self._attempts = 0
        self._reconnect_task: asyncio.Task[None] | None = None
        self._teardown_hooks: list[TeardownHook] = []
        self._closed = asyncio.Event()
        self._stopping = False

    # --- Public API ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def transport(self) -> Transport | None:
        """The live session's transport, or None between sessions."""
        return self._transport

    @property
    def attempts(self) -> int:
        """Consecutive failed connection attempts since the last successful open."""
        return self._attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def on_teardown(self, hook: TeardownHook) -> None:
        """Run *hook* whenever a session is torn down (e.g. cancel media jobs)."""
        self._teardown_hooks.append(hook)

    async def start(self) -> None:
        """Open the first session. Returns once ``connect`` has been issued."""
        self._stopping = False
        self._closed.clear()
        await self._open_session()

    async def wait_closed(self) -> None:
        """Block until the manager reaches CLOSED_TERMINAL."""
        await self._closed.wait()

    async def stop(self) -> None:
        """Tear down the current session and stop reconnecting."""
        self._stopping = True
        self._cancel_reconnect()
        await self._teardown()
        self._set_state(ConnectionState.CLOSED_TERMINAL, "stopped")
        self._closed.set()

    async def handle_update(self, update: ConnectionUpdate) -> None:
        """Apply one connection update from the current session."""
        if update.identity:
            self._store.persist(update.identity)

        if update.pairing_code and self._state == ConnectionState.CONNECTING:
            self._show_pairing_code(update.pairing_code)

        if update.state == TransportState.OPEN:
            await self._on_open()
        elif update.state == TransportState.CLOSE:
            await self._on_close(update)

    # --- Session handling ---

    async def _open_session(self) -> None:
        credentials = self._store.load()
        self._generation += 1
        generation = self._generation

        def on_event(event: InboundEvent) -> None:
            self._dispatch(generation, event)

        self._transport = self._factory(credentials, on_event)
        self._set_state(ConnectionState.CONNECTING)
        logger.info(
            "Connecting",
            attempt=self._attempts,
            paired=credentials.identity is not None,
        )
        try:
            await self._transport.connect()
        except Exception as exc:
            logger.warning("Connect failed", err=str(exc))
            await self._on_close(ConnectionUpdate(state=TransportState.CLOSE, reason=str(exc)))

    def _dispatch(self, generation: int, event: InboundEvent) -> None:
        if generation != self._generation:
            logger.debug("Ignoring event from superseded session", event=type(event).__name__)
            return
        if isinstance(event, InboundMessage):
            self._bus.emit(event)
        else:
            create_background_task(self.handle_update(event), name="connection-update")

    async def _on_open(self) -> None:
        if self._state == ConnectionState.OPEN:
            return
        self._attempts = 0
        self._set_state(ConnectionState.OPEN)
        transport = self._transport
        identity = transport.self_id if transport else None
        if identity:
            self._store.persist(identity)
        logger.info("Connected to WhatsApp", identity=identity)

        if transport is None or identity is None:
            logger.warning("Connected without a self identity, skipping connected notice")
            return
        await best_effort(
            transport.send_text(identity, self._settings.messages.connected),
            action="send connected notice",
        )

    async def _on_close(self, update: ConnectionUpdate) -> None:
        if self._state == ConnectionState.CLOSED_TERMINAL:
            return
        if update.logged_out:
            self._cancel_reconnect()
            logger.error(
                "Logged out from WhatsApp. Run 'danuu pair' to link the device again.",
                reason=update.reason,
            )
            self._store.forget_identity()
            await self._terminate(update.reason or "logged out")
            return
        if self.reconnect_pending:
            logger.debug("Reconnect already scheduled, ignoring close", reason=update.reason)
            return

        cfg = self._settings.reconnect
        if self._stopping or not cfg.enabled:
            logger.error("Connection closed, reconnect disabled", reason=update.reason)
            await self._terminate(update.reason)
            return

        self._attempts += 1
        if cfg.max_attempts and self._attempts > cfg.max_attempts:
            logger.error(
                "Giving up after repeated connection failures",
                attempts=self._attempts - 1,
                reason=update.reason,
            )
            await self._terminate(update.reason)
            return

        delay = compute_backoff(self._attempts, cfg.base_delay_seconds, cfg.max_delay_seconds)
        self._set_state(ConnectionState.CLOSED_RECONNECTABLE, update.reason)
        logger.warning(
            "Connection closed, reconnecting",
            reason=update.reason,
            attempt=self._attempts,
            delay=delay,
        )
        self._reconnect_task = create_background_task(self._reconnect(delay), name="reconnect")

    async def _reconnect(self, delay: float) -> None:
        await self._teardown()
        if delay > 0:
            await asyncio.sleep(delay)
        if self._stopping:
            return
        # A failure inside _open_session must be free to schedule the next attempt.
        self._reconnect_task = None
        try:
            await self._open_session()
        except Exception as exc:
            logger.warning("Could not build a new session", err=str(exc))
            await self._on_close(ConnectionUpdate(state=TransportState.CLOSE, reason=str(exc)))

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._reconnect_task = None

    async def _terminate(self, reason: str | None) -> None:
        await self._teardown()
        self._set_state(ConnectionState.CLOSED_TERMINAL, reason)
        self._closed.set()

    async def _teardown(self) -> None:
        """Drop the current session and everything bound to it."""
        transport, self._transport = self._transport, None
        # Anything the old session still reports is stale from here on.
        self._generation += 1
        for hook in self._teardown_hooks:
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Teardown hook failed")
        if transport is not None:
            await best_effort(transport.disconnect(), action="disconnect session")

    def _set_state(self, state: ConnectionState, reason: str | None = None) -> None:
        if state == self._state:
            return
        previous, self._state = self._state, state
        self._bus.emit(ConnectionStateChanged(previous=previous, current=state, reason=reason))


def _print_pairing_code(code: str) -> None:
    print("Scan this QR code with WhatsApp (Linked Devices -> Link a Device):")
    print(render_qr(code), flush=True)
