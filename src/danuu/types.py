"""Data models and capability protocols for danuu."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

STATUS_BROADCAST_JID = "status@broadcast"
GROUP_SERVER = "g.us"


def is_group_jid(jid: str) -> bool:
    return jid.endswith(f"@{GROUP_SERVER}")


# --- Connection ---


class TransportState(StrEnum):
    """Connection state as reported by the transport."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


class ConnectionState(StrEnum):
    """Session lifecycle as tracked by the ConnectionManager."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_RECONNECTABLE = "closed_reconnectable"
    CLOSED_TERMINAL = "closed_terminal"


@dataclass(frozen=True)
class ConnectionUpdate:
    state: TransportState
    reason: str | None = None
    logged_out: bool = False
    pairing_code: str | None = None  # QR payload, display only
    identity: str | None = None  # set when pairing produced/refreshed credentials


@dataclass(frozen=True)
class SessionCredentials:
    auth_db_path: Path
    identity: str | None = None


# --- Messages ---


@dataclass(frozen=True)
class MessageRef:
    """Enough of a message for the transport to react to, read, or download it."""

    chat_id: str
    message_id: str
    sender_id: str
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class InboundMessage:
    ref: MessageRef
    chat_id: str
    sender_id: str
    text: str
    is_group: bool = False
    is_status: bool = False
    is_from_self: bool = False
    is_live: bool = True  # False for history sync / offline replays
    has_image: bool = False
    push_name: str = ""


type InboundEvent = ConnectionUpdate | InboundMessage
type EventCallback = Callable[[InboundEvent], None]


@dataclass(frozen=True)
class NormalizedMessage:
    sender_id: str
    chat_id: str
    text: str  # lower-cased and trimmed
    original_text: str
    ref: MessageRef
    has_image: bool = False

    @classmethod
    def from_inbound(cls, message: InboundMessage) -> NormalizedMessage:
        return cls(
            sender_id=message.sender_id,
            chat_id=message.chat_id,
            text=message.text.strip().lower(),
            original_text=message.text,
            ref=message.ref,
            has_image=message.has_image,
        )


@dataclass(frozen=True)
class PermitDecision:
    known: bool


@dataclass(frozen=True)
class Command:
    name: str
    argument_text: str = ""


@dataclass(frozen=True)
class MenuOption:
    id: str  # text the option stands for, e.g. ".ping"
    label: str


@dataclass(frozen=True)
class InteractiveMenu:
    """Transport-neutral selectable menu. Each transport decides how to render it."""

    title: str
    body: str
    footer: str
    options: tuple[MenuOption, ...]


# --- Media ---


class JobStatus(StrEnum):
    PENDING = "pending"
    SEARCHING = "searching"
    FETCHING = "fetching"
    READY = "ready"
    DONE = "done"
    FAILED = "failed"


@dataclass
class DownloadJob:
    id: str
    query: str
    chat_id: str
    status: JobStatus = JobStatus.PENDING
    result_url: str | None = None
    result_title: str | None = None
    local_path: Path | None = None
    error: str | None = None


@dataclass(frozen=True)
class SearchResult:
    id: str
    url: str
    title: str = ""


# --- Capabilities ---


class Transport(Protocol):
    """Outbound capability surface of one live session.

    Owned by the ConnectionManager. Other components receive it per call and
    must not connect, disconnect or retain it.
    """

    @property
    def self_id(self) -> str | None: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def send_text(self, chat_id: str, text: str) -> None: ...

    async def send_menu(self, chat_id: str, menu: InteractiveMenu) -> None: ...

    async def send_reaction(self, to: str, ref: MessageRef, emoji: str) -> None: ...

    async def mark_read(self, ref: MessageRef) -> None: ...

    async def is_known_contact(self, jid: str) -> bool: ...

    async def download_media(self, ref: MessageRef) -> bytes: ...

    async def send_sticker(self, chat_id: str, data: bytes) -> None: ...

    async def send_audio(self, chat_id: str, path: Path, mimetype: str) -> None: ...


type TransportFactory = Callable[[SessionCredentials, EventCallback], Transport]


class MediaSource(Protocol):
    """External video search and audio download service."""

    async def search(self, query: str, limit: int = 1) -> list[SearchResult]: ...

    async def fetch_audio(self, url: str, dest_stem: Path) -> Path:
        """Download the audio of *url* to ``dest_stem.<ext>`` and return the path."""
        ...
