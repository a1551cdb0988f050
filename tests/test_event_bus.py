"""Tests for the EventBus pub/sub system."""

from __future__ import annotations

import asyncio

import pytest

from conftest import make_message
from danuu.event_bus import ConnectionStateChanged, EventBus
from danuu.types import ConnectionState, InboundMessage


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


class TestEventBus:
    async def test_every_subscriber_sees_every_message(self, bus: EventBus) -> None:
        first: list[InboundMessage] = []
        second: list[InboundMessage] = []

        async def a(event: InboundMessage) -> None:
            first.append(event)

        async def b(event: InboundMessage) -> None:
            second.append(event)

        bus.subscribe(InboundMessage, a)
        bus.subscribe(InboundMessage, b)
        message = make_message("hi")
        bus.emit(message)
        await bus.drain()

        assert first == [message]
        assert second == [message]

    async def test_events_routed_by_type(self, bus: EventBus) -> None:
        received: list[object] = []

        async def listener(event: object) -> None:
            received.append(event)

        bus.subscribe(ConnectionStateChanged, listener)
        bus.emit(make_message())
        change = ConnectionStateChanged(ConnectionState.CONNECTING, ConnectionState.OPEN)
        bus.emit(change)
        await bus.drain()

        assert received == [change]

    async def test_unsubscribe(self, bus: EventBus) -> None:
        received: list[object] = []

        async def listener(event: object) -> None:
            received.append(event)

        unsubscribe = bus.subscribe(InboundMessage, listener)
        unsubscribe()
        unsubscribe()  # idempotent
        bus.emit(make_message())
        await bus.drain()

        assert received == []

    async def test_failing_listener_does_not_affect_others(self, bus: EventBus) -> None:
        received: list[object] = []

        async def broken(event: object) -> None:
            raise RuntimeError("boom")

        async def ok(event: object) -> None:
            received.append(event)

        bus.subscribe(InboundMessage, broken)
        bus.subscribe(InboundMessage, ok)
        bus.emit(make_message())
        await bus.drain()

        assert len(received) == 1

    async def test_emit_does_not_block(self, bus: EventBus) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow(event: object) -> None:
            started.set()
            await release.wait()

        bus.subscribe(InboundMessage, slow)
        bus.emit(make_message())
        await asyncio.wait_for(started.wait(), 1)
        release.set()
        await bus.drain()
