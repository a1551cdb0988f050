"""Centralized configuration: Pydantic BaseSettings with TOML + dotenv sources.

Bot texts, rules and tuning live in config.toml. Environment variables
override it using ``__`` as the nested delimiter (e.g. ``BOT__PREFIX=!``).

Priority (highest wins): init args > env vars > .env > config.toml

Usage::

    from danuu.config import get_settings

    s = get_settings()
    print(s.bot.prefix)
    print(s.rules.greetings)
"""

from __future__ import annotations

from functools import cached_property
from pathlib import Path

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# ---------------------------------------------------------------------------
# Default texts
# ---------------------------------------------------------------------------

_PERMIT_NOTICE = (
    "\n*This is an automated message.*\n"
    "Hello, I am the bot for this number. I do not recognize your number. "
    "Please wait for the owner of this number to respond.\n"
)

_START_TEXT = (
    "\nහලෝ! මම DANUU-MD Bot.\n"
    "මම මගේ නිර්මාතෘ විසින් විශේෂයෙන් නිර්මාණය කරන ලද්දේ ඔබ වෙනුවෙන් සේවය කිරීමටයි. මගේ සියලු විධාන ලැයිස්තුව බැලීමට {prefix}menu ටයිප් කරන්න.\n"
)

_INFO_TEXT = (
    "Hello, I'm the DANUU-MD bot. I was created with the neonize library "
    "to automate tasks on WhatsApp."
)

_MENU_BODY = "ඔබට අවශ්‍ය විධානය තෝරාගන්න."

_QUOTES = [
    "The only way to do great work is to love what you do. - Steve Jobs",
    "Success is not final, failure is not fatal: it is the courage to continue that counts."
    " - Winston Churchill",
    "The best way to predict the future is to create it. - Peter Drucker",
    "Do not wait for a perfect time. Take the moment and make it perfect. - Sri Chinmoy",
]

_SAVE_KEYWORDS = ["sv", "save", "සෙව්", "සෙවු"]

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in config.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models. Unknown keys are rejected."""

    model_config = {"extra": "forbid"}


class BotConfig(_StrictModel):
    name: str = "DANUU-MD"
    prefix: str = "."
    store_dir: str = "store"  # relative to project root or absolute

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        if len(v) != 1 or v.isspace():
            raise ValueError("prefix must be a single non-space character")
        return v


class MessagesConfig(_StrictModel):
    connected: str = "DANUU-MD BOT CONNECTED"
    permit_notice: str = _PERMIT_NOTICE
    start: str = _START_TEXT  # {prefix} is substituted
    info: str = _INFO_TEXT
    menu_title: str = "*DANUU-MD Bot Menu*"
    menu_body: str = _MENU_BODY
    menu_footer: str = "Powered by DANUU-MD"
    quotes: list[str] = _QUOTES
    sticker_usage: str = "Send an image with the caption {prefix}sticker to make a sticker."
    song_usage: str = "Please provide a song name. Example: {prefix}song Bossa no.1"
    song_searching: str = '_Searching for "{query}"..._'
    song_not_found: str = "Sorry, I could not find that song."
    song_failed: str = (
        "Something went wrong while trying to download the song. Please try again."
    )

    @field_validator("quotes")
    @classmethod
    def require_quotes(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("quotes must contain at least one entry")
        return v


class RulesConfig(_StrictModel):
    auto_reply_keywords: list[str] = _SAVE_KEYWORDS
    auto_reply_text: str = "HARI OYAWA AUTO SV"
    react_trigger: str = "danuu"  # empty disables the auto-react rule
    react_emoji: str = "\N{THUMBS UP SIGN}"
    greetings: dict[str, str] = {
        "hello": "*Hi! I'm DANUU-MD bot.*",
        "hi": "*Hello! How can I help you today?*",
    }


class StatusConfig(_StrictModel):
    auto_view: bool = True
    react_emoji: str = "\N{CLAPPING HANDS SIGN}"


class ReconnectConfig(_StrictModel):
    enabled: bool = True
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 300.0
    max_attempts: int = 0  # 0 = retry forever

    @field_validator("base_delay_seconds", "max_delay_seconds")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays must be >= 0")
        return v

    @field_validator("max_attempts")
    @classmethod
    def clamp_attempts(cls, v: int) -> int:
        return max(0, v)


class MediaConfig(_StrictModel):
    temp_dir: str = "tmp/media"  # relative to project root or absolute
    audio_mimetype: str = "audio/mp4"
    audio_format: str = "bestaudio[ext=m4a]/bestaudio"
    max_concurrent_jobs: int = 1
    search_limit: int = 1

    @field_validator("max_concurrent_jobs", "search_limit")
    @classmethod
    def clamp_positive(cls, v: int) -> int:
        return max(1, v)


class TransportConfig(_StrictModel):
    # Messages older than (connect time - window) are history/offline replays.
    replay_window_seconds: float = 30.0


class LoggingConfig(_StrictModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="config.toml",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    bot: BotConfig = BotConfig()
    messages: MessagesConfig = MessagesConfig()
    rules: RulesConfig = RulesConfig()
    status: StatusConfig = StatusConfig()
    reconnect: ReconnectConfig = ReconnectConfig()
    media: MediaConfig = MediaConfig()
    transport: TransportConfig = TransportConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > config.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    # --- Computed properties ---

    @cached_property
    def project_root(self) -> Path:
        return Path.cwd()

    @cached_property
    def store_dir(self) -> Path:
        return _resolve(self.project_root, self.bot.store_dir)

    @cached_property
    def media_dir(self) -> Path:
        return _resolve(self.project_root, self.media.temp_dir)

    @cached_property
    def auth_db_path(self) -> Path:
        return self.store_dir / "neonize.db"


def _resolve(root: Path, value: str) -> Path:
    p = Path(value).expanduser()
    if not p.is_absolute():
        p = root / p
    return p.resolve()


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
