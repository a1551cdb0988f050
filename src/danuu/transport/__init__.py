"""Transport adapters.

The neonize adapter is imported lazily so that the rest of the bot (and its
tests) can load without the native WhatsApp bindings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from danuu.config import Settings
    from danuu.types import EventCallback, SessionCredentials, Transport, TransportFactory


def whatsapp_transport_factory(settings: Settings) -> TransportFactory:
    """Build sessions backed by neonize for the ConnectionManager."""

    def _factory(credentials: SessionCredentials, on_event: EventCallback) -> Transport:
        from danuu.transport.whatsapp import WhatsAppTransport

        return WhatsAppTransport(
            credentials,
            on_event,
            replay_window_seconds=settings.transport.replay_window_seconds,
        )

    return _factory
