"""Lightweight asyncio event bus for intra-process pub/sub.

The connection manager publishes every inbound message here. Consumers
(the message router, the status handler) subscribe independently and each
sees every event.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import defaultdict
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from danuu.logger import logger
from danuu.types import ConnectionState, InboundMessage


@dataclass
class ConnectionStateChanged:
    """The ConnectionManager moved from one lifecycle state to another."""

    previous: ConnectionState
    current: ConnectionState
    reason: str | None = None


type Event = InboundMessage | ConnectionStateChanged
type Listener = Callable[[Any], Coroutine[Any, Any, None]]


class EventBus:
    """Fire-and-forget async event dispatcher."""

    def __init__(self) -> None:
        self._listeners: defaultdict[type, list[Listener]] = defaultdict(list)
        self._pending: set[asyncio.Future[None]] = set()

    def subscribe(self, event_type: type, listener: Listener) -> Callable[[], None]:
        """Subscribe to an event type. Returns an unsubscribe function."""
        self._listeners[event_type].append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners[event_type].remove(listener)

        return _unsubscribe

    def emit(self, event: Event) -> None:
        """Emit an event to all subscribers. Non-blocking, fire-and-forget."""
        for listener in list(self._listeners[type(event)]):
            fut = asyncio.ensure_future(_safe_call(listener, event))
            self._pending.add(fut)
            fut.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until every listener call scheduled so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


async def _safe_call(listener: Listener, event: Event) -> None:
    try:
        await listener(event)
    except Exception as exc:
        logger.warning("EventBus listener error", err=str(exc), event=type(event).__name__)
