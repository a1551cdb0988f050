"""Shared test fixtures for danuu."""

from __future__ import annotations

from pathlib import Path

import pytest

from danuu.types import (
    ConnectionUpdate,
    EventCallback,
    InboundMessage,
    InteractiveMenu,
    MessageRef,
    SearchResult,
    SessionCredentials,
)

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures; importable by test files)
# ---------------------------------------------------------------------------

# Cached property names that must be set via __dict__ (not model_construct).
_CACHED_PROPERTY_NAMES = frozenset({"project_root", "store_dir", "media_dir", "auth_db_path"})


def make_settings(**overrides):
    """Create a Settings object with defaults for testing.

    Accepts both model fields (bot, rules, ...) and cached property
    overrides (store_dir, media_dir, ...).

    Usage::

        s = make_settings(media_dir=tmp_path / "media")
        s = make_settings(reconnect=ReconnectConfig(base_delay_seconds=0))
    """
    from danuu.config import (
        BotConfig,
        LoggingConfig,
        MediaConfig,
        MessagesConfig,
        ReconnectConfig,
        RulesConfig,
        Settings,
        StatusConfig,
        TransportConfig,
    )

    cached = {k: overrides.pop(k) for k in list(overrides) if k in _CACHED_PROPERTY_NAMES}

    defaults = {
        "bot": BotConfig(),
        "messages": MessagesConfig(),
        "rules": RulesConfig(),
        "status": StatusConfig(),
        # No real sleeping in tests unless a test asks for it.
        "reconnect": ReconnectConfig(base_delay_seconds=0),
        "media": MediaConfig(),
        "transport": TransportConfig(),
        "logging": LoggingConfig(),
    }
    defaults.update(overrides)
    s = Settings.model_construct(**defaults)

    for key, value in cached.items():
        s.__dict__[key] = value

    return s


def make_message(
    text: str = "hello",
    *,
    chat_id: str = "94770000001@s.whatsapp.net",
    sender_id: str | None = None,
    message_id: str = "MSG1",
    **flags,
) -> InboundMessage:
    sender = sender_id or chat_id
    return InboundMessage(
        ref=MessageRef(chat_id=chat_id, message_id=message_id, sender_id=sender),
        chat_id=chat_id,
        sender_id=sender,
        text=text,
        **flags,
    )


class FakeTransport:
    """In-memory Transport that records every outbound call."""

    def __init__(
        self,
        credentials: SessionCredentials | None = None,
        on_event: EventCallback | None = None,
        *,
        self_id: str | None = "94771111111@s.whatsapp.net",
        known: bool = True,
    ) -> None:
        self.credentials = credentials
        self.on_event = on_event
        self._self_id = self_id
        self.known = known
        self.contact_error: Exception | None = None
        self.fail_sends = False
        self.connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.media_bytes = b"\x89PNG fake"
        self.texts: list[tuple[str, str]] = []
        self.menus: list[tuple[str, InteractiveMenu]] = []
        self.reactions: list[tuple[str, MessageRef, str]] = []
        self.reads: list[MessageRef] = []
        self.stickers: list[tuple[str, bytes]] = []
        self.audio: list[tuple[str, Path, str]] = []

    @property
    def self_id(self) -> str | None:
        return self._self_id

    @property
    def outbound_count(self) -> int:
        return (
            len(self.texts)
            + len(self.menus)
            + len(self.reactions)
            + len(self.reads)
            + len(self.stickers)
            + len(self.audio)
        )

    def emit(self, event: ConnectionUpdate | InboundMessage) -> None:
        assert self.on_event is not None
        self.on_event(event)

    def _maybe_fail(self) -> None:
        if self.fail_sends:
            raise RuntimeError("send failed")

    async def connect(self) -> None:
        self.connect_calls += 1
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    async def send_text(self, chat_id: str, text: str) -> None:
        self._maybe_fail()
        self.texts.append((chat_id, text))

    async def send_menu(self, chat_id: str, menu: InteractiveMenu) -> None:
        self._maybe_fail()
        self.menus.append((chat_id, menu))

    async def send_reaction(self, to: str, ref: MessageRef, emoji: str) -> None:
        self._maybe_fail()
        self.reactions.append((to, ref, emoji))

    async def mark_read(self, ref: MessageRef) -> None:
        self._maybe_fail()
        self.reads.append(ref)

    async def is_known_contact(self, jid: str) -> bool:
        if self.contact_error is not None:
            raise self.contact_error
        return self.known

    async def download_media(self, ref: MessageRef) -> bytes:
        return self.media_bytes

    async def send_sticker(self, chat_id: str, data: bytes) -> None:
        self._maybe_fail()
        self.stickers.append((chat_id, data))

    async def send_audio(self, chat_id: str, path: Path, mimetype: str) -> None:
        self._maybe_fail()
        # The file must exist at delivery time.
        assert path.exists(), path
        self.audio.append((chat_id, path, mimetype))


class FakeMediaSource:
    """MediaSource that returns canned results and writes a small file on fetch."""

    def __init__(self, results: list[SearchResult] | None = None) -> None:
        self.results = (
            results
            if results is not None
            else [SearchResult(id="abc123", url="https://youtu.be/abc123", title="Bossa no.1")]
        )
        self.search_calls: list[tuple[str, int]] = []
        self.fetch_calls: list[tuple[str, Path]] = []
        self.search_error: Exception | None = None
        self.fetch_error: Exception | None = None

    async def search(self, query: str, limit: int = 1) -> list[SearchResult]:
        self.search_calls.append((query, limit))
        if self.search_error is not None:
            raise self.search_error
        return self.results[:limit]

    async def fetch_audio(self, url: str, dest_stem: Path) -> Path:
        self.fetch_calls.append((url, dest_stem))
        path = dest_stem.with_name(f"{dest_stem.name}.m4a")
        path.write_bytes(b"audio")
        if self.fetch_error is not None:
            raise self.fetch_error
        return path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path):
    return make_settings(
        project_root=tmp_path,
        store_dir=tmp_path / "store",
        media_dir=tmp_path / "media",
        auth_db_path=tmp_path / "store" / "neonize.db",
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def media_source() -> FakeMediaSource:
    return FakeMediaSource()


@pytest.fixture(autouse=True)
def _reset_settings_singleton():
    from danuu.config import reset_settings

    reset_settings()
    yield
    reset_settings()
