"""Device linking.

``render_qr`` draws a pairing code in the terminal; ``pair`` runs a
standalone linking session (``danuu pair``) that exits once the device is
linked, without starting the bot.
"""

from __future__ import annotations

import asyncio
import io

import qrcode

from danuu.config import Settings, get_settings
from danuu.session_store import SessionStore
from danuu.types import ConnectionUpdate, InboundEvent, Transport, TransportFactory, TransportState


def render_qr(data: str | bytes) -> str:
    qr = qrcode.QRCode(border=1)
    qr.add_data(data)
    qr.make()
    buf = io.StringIO()
    qr.print_ascii(out=buf, invert=True)
    return buf.getvalue()


async def pair(
    settings: Settings | None = None,
    *,
    force: bool = False,
    transport_factory: TransportFactory | None = None,
) -> int:
    """Link this bot to a WhatsApp account. Returns a process exit code."""
    s = settings or get_settings()
    store = SessionStore(s.store_dir)

    if force:
        store.clear()
    elif store.is_paired():
        print("[OK] Already linked with WhatsApp")
        print("     Run 'danuu pair --force' to link a different account.")
        return 0

    if transport_factory is None:
        from danuu.transport import whatsapp_transport_factory

        transport_factory = whatsapp_transport_factory(s)

    print("Scan the QR code with WhatsApp:")
    print("  1. Open WhatsApp on your phone")
    print("  2. Tap Settings -> Linked Devices -> Link a Device")
    print("  3. Point your camera at the QR code below")
    print()

    done = asyncio.Event()
    exit_code = 0
    transport: Transport | None = None

    def on_event(event: InboundEvent) -> None:
        nonlocal exit_code
        if not isinstance(event, ConnectionUpdate):
            return
        if event.pairing_code:
            print(render_qr(event.pairing_code), flush=True)
        if event.identity:
            store.persist(event.identity)
            print(f"  Paired as {event.identity}")
        if event.state == TransportState.OPEN:
            identity = transport.self_id if transport else None
            if identity:
                store.persist(identity)
            print()
            print("[OK] Successfully linked with WhatsApp")
            print(f"     Credentials saved to {store.auth_db_path}")
            print("     You can now run danuu.")
            done.set()
        elif event.state == TransportState.CLOSE:
            print()
            print(f"[ERROR] Linking failed: {event.reason or 'connection closed'}")
            exit_code = 1
            done.set()

    transport = transport_factory(store.load(), on_event)
    try:
        await transport.connect()
        await done.wait()
    finally:
        await transport.disconnect()
    return exit_code
