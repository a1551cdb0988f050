"""WhatsApp transport using neonize (whatsmeow Python bindings).

One instance is one session. The ConnectionManager builds a fresh instance
per (re)connect and owns its lifetime; everything the client reports is
translated into ConnectionUpdate / InboundMessage and handed to the single
``on_event`` callback.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from pathlib import Path

from neonize.aioze import client as neonize_client
from neonize.aioze import events as neonize_events
from neonize.aioze.client import NewAClient
from neonize.events import (
    ConnectedEv,
    ConnectFailureEv,
    DisconnectedEv,
    LoggedOutEv,
    MessageEv,
    PairStatusEv,
)
from neonize.proto.Neonize_pb2 import JID
from neonize.utils.enum import ReceiptType
from neonize.utils.jid import Jid2String, build_jid

from danuu.errors import TransportError
from danuu.logger import logger
from danuu.transport.formatting import format_menu_text
from danuu.types import (
    STATUS_BROADCAST_JID,
    ConnectionUpdate,
    EventCallback,
    InboundMessage,
    InteractiveMenu,
    MessageRef,
    SessionCredentials,
    TransportState,
    is_group_jid,
)

USER_SERVER = "s.whatsapp.net"


class WhatsAppTransport:
    """Transport implemented via neonize (whatsmeow Go bindings)."""

    name = "whatsapp"

    def __init__(
        self,
        credentials: SessionCredentials,
        on_event: EventCallback,
        *,
        replay_window_seconds: float = 30.0,
    ) -> None:
        self._on_event = on_event
        self._replay_window = replay_window_seconds
        self._connected_at: float | None = None
        self._lid_to_phone: dict[str, str] = {}
        self._idle_task: asyncio.Future[None] | None = None

        # Neonize keeps module-level loop references; patch both modules so
        # events and internal tasks bind to this running loop.
        loop = asyncio.get_running_loop()
        neonize_events.event_global_loop = loop
        neonize_client.event_global_loop = loop

        credentials.auth_db_path.parent.mkdir(parents=True, exist_ok=True)
        self._client = NewAClient(str(credentials.auth_db_path))
        self._register_events()

    def _register_events(self) -> None:
        @self._client.event(ConnectedEv)
        async def on_connected(_client: NewAClient, _ev: ConnectedEv) -> None:
            self._connected_at = time.time()
            if self._client.me:
                device = self._client.me
                jid = getattr(device, "JID", None)
                lid = getattr(device, "LID", None)
                if jid and lid and lid.User:
                    self._lid_to_phone[lid.User] = f"{jid.User}@{USER_SERVER}"
            self._on_event(ConnectionUpdate(state=TransportState.OPEN))

        @self._client.event(DisconnectedEv)
        async def on_disconnected(_client: NewAClient, _ev: DisconnectedEv) -> None:
            self._connected_at = None
            self._on_event(ConnectionUpdate(state=TransportState.CLOSE, reason="disconnected"))

        @self._client.event(LoggedOutEv)
        async def on_logged_out(_client: NewAClient, ev: LoggedOutEv) -> None:
            self._connected_at = None
            self._on_event(
                ConnectionUpdate(
                    state=TransportState.CLOSE,
                    reason=f"logged out ({getattr(ev, 'Reason', 'unknown')})",
                    logged_out=True,
                )
            )

        @self._client.event(ConnectFailureEv)
        async def on_connect_failure(_client: NewAClient, ev: ConnectFailureEv) -> None:
            self._connected_at = None
            self._on_event(
                ConnectionUpdate(
                    state=TransportState.CLOSE,
                    reason=f"connect failure ({getattr(ev, 'Reason', 'unknown')})",
                )
            )

        @self._client.event(PairStatusEv)
        async def on_pair_status(_client: NewAClient, ev: PairStatusEv) -> None:
            self._on_event(
                ConnectionUpdate(
                    state=TransportState.CONNECTING,
                    identity=f"{ev.ID.User}@{USER_SERVER}",
                )
            )

        @self._client.event.qr
        async def on_qr(_client: NewAClient, qr_data: bytes) -> None:
            code = qr_data.decode() if isinstance(qr_data, bytes) else str(qr_data)
            self._on_event(ConnectionUpdate(state=TransportState.CONNECTING, pairing_code=code))

        @self._client.event(MessageEv)
        async def on_message(_client: NewAClient, message: MessageEv) -> None:
            try:
                self._on_event(self._to_inbound(message))
            except Exception:
                logger.exception(
                    "Unhandled error in message handler",
                    message_id=getattr(getattr(message, "Info", None), "ID", "unknown"),
                )

    # --- Lifecycle ---

    @property
    def self_id(self) -> str | None:
        device = self._client.me
        jid = getattr(device, "JID", None) if device else None
        if jid is None or not jid.User:
            return None
        return f"{jid.User}@{USER_SERVER}"

    async def connect(self) -> None:
        self._on_event(ConnectionUpdate(state=TransportState.CONNECTING))
        await self._client.connect()
        self._idle_task = asyncio.ensure_future(self._client.idle())

    async def disconnect(self) -> None:
        self._connected_at = None
        if self._idle_task:
            self._idle_task.cancel()
        with contextlib.suppress(Exception):
            await self._client.disconnect()

    # --- Outbound ---

    async def send_text(self, chat_id: str, text: str) -> None:
        try:
            await self._client.send_message(self._parse_jid(chat_id), text)
        except Exception as err:
            raise TransportError(f"send_text to {chat_id} failed: {err}") from err

    async def send_menu(self, chat_id: str, menu: InteractiveMenu) -> None:
        await self.send_text(chat_id, format_menu_text(menu))

    async def send_reaction(self, to: str, ref: MessageRef, emoji: str) -> None:
        try:
            reaction_msg = await self._client.build_reaction(
                self._parse_jid(ref.chat_id),
                self._parse_jid(ref.sender_id),
                ref.message_id,
                emoji,
            )
            await self._client.send_message(self._parse_jid(to), reaction_msg)
        except Exception as err:
            raise TransportError(f"send_reaction to {to} failed: {err}") from err

    async def mark_read(self, ref: MessageRef) -> None:
        try:
            await self._client.mark_read(
                ref.message_id,
                chat=self._parse_jid(ref.chat_id),
                sender=self._parse_jid(ref.sender_id),
                receipt=ReceiptType.READ,
            )
        except Exception as err:
            raise TransportError(f"mark_read {ref.message_id} failed: {err}") from err

    async def is_known_contact(self, jid: str) -> bool:
        info = await self._client.contact.get_contact(self._parse_jid(jid))
        return bool(info.Found)

    async def download_media(self, ref: MessageRef) -> bytes:
        if ref.raw is None:
            raise TransportError(f"Message {ref.message_id} carries no media")
        try:
            return await self._client.download_any(ref.raw)
        except Exception as err:
            raise TransportError(f"download of {ref.message_id} failed: {err}") from err

    async def send_sticker(self, chat_id: str, data: bytes) -> None:
        try:
            await self._client.send_sticker(self._parse_jid(chat_id), data)
        except Exception as err:
            raise TransportError(f"send_sticker to {chat_id} failed: {err}") from err

    async def send_audio(self, chat_id: str, path: Path, mimetype: str) -> None:
        try:
            message = await self._client.build_audio_message(str(path))
            message.audioMessage.mimetype = mimetype
            await self._client.send_message(self._parse_jid(chat_id), message)
        except Exception as err:
            raise TransportError(f"send_audio to {chat_id} failed: {err}") from err

    # --- Inbound ---

    def _to_inbound(self, message: MessageEv) -> InboundMessage:
        info = message.Info
        source = info.MessageSource
        raw_chat = Jid2String(source.Chat)
        chat_id = self._translate_jid(raw_chat, source.Chat)
        sender_id = self._translate_jid(Jid2String(source.Sender), source.Sender)

        msg = message.Message
        text = (
            msg.conversation
            or msg.extendedTextMessage.text
            or msg.imageMessage.caption
            or msg.videoMessage.caption
            or ""
        )

        return InboundMessage(
            ref=MessageRef(
                chat_id=raw_chat,
                message_id=info.ID,
                sender_id=Jid2String(source.Sender),
                raw=msg,
            ),
            chat_id=chat_id,
            sender_id=sender_id,
            text=text,
            is_group=bool(source.IsGroup) or is_group_jid(chat_id),
            is_status=raw_chat == STATUS_BROADCAST_JID,
            is_from_self=bool(source.IsFromMe),
            is_live=self._is_live(info.Timestamp),
            has_image=msg.HasField("imageMessage"),
            push_name=info.Pushname,
        )

    def _is_live(self, ts: float) -> bool:
        """False for history sync and offline backlog delivered on connect."""
        if self._connected_at is None:
            return False
        if ts > 1e10:
            ts = ts / 1000
        return ts >= self._connected_at - self._replay_window

    def _translate_jid(self, jid_str: str, jid: JID) -> str:
        if jid.Server != "lid":
            return jid_str
        lid_user = jid.User.split(":")[0]
        return self._lid_to_phone.get(lid_user, jid_str)

    @staticmethod
    def _parse_jid(jid_str: str) -> JID:
        if "@" not in jid_str:
            return build_jid(jid_str)
        user, server = jid_str.split("@", 1)
        return build_jid(user, server)
