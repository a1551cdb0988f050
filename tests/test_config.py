"""Tests for Settings loading and validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from danuu.config import (
    BotConfig,
    MediaConfig,
    MessagesConfig,
    ReconnectConfig,
    RulesConfig,
    Settings,
    get_settings,
    reset_settings,
)


@pytest.fixture
def in_tmp(tmp_path, monkeypatch):
    """Run Settings() against an empty project dir without stray env overrides."""
    monkeypatch.chdir(tmp_path)
    for key in ("BOT__PREFIX", "RECONNECT__MAX_ATTEMPTS", "LOGGING__LEVEL"):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


class TestDefaults:
    def test_defaults_without_config_file(self, in_tmp):
        s = Settings()
        assert s.bot.name == "DANUU-MD"
        assert s.bot.prefix == "."
        assert s.messages.connected == "DANUU-MD BOT CONNECTED"
        assert s.rules.auto_reply_text == "HARI OYAWA AUTO SV"
        assert s.rules.greetings["hello"] == "*Hi! I'm DANUU-MD bot.*"
        assert s.status.auto_view is True
        assert s.reconnect.enabled is True
        assert s.reconnect.max_attempts == 0
        assert s.media.max_concurrent_jobs == 1

    def test_start_text_mentions_menu_command(self):
        assert "{prefix}menu" in MessagesConfig().start

    def test_save_keywords_include_sinhala(self):
        keywords = RulesConfig().auto_reply_keywords
        assert "sv" in keywords
        assert "save" in keywords
        assert len(keywords) == 4

    def test_paths_resolve_against_project_root(self, in_tmp):
        s = Settings()
        assert s.store_dir == (in_tmp / "store").resolve()
        assert s.auth_db_path == s.store_dir / "neonize.db"
        assert s.media_dir == (in_tmp / "tmp" / "media").resolve()


class TestSources:
    def test_toml_file_is_loaded(self, in_tmp):
        (in_tmp / "config.toml").write_text(
            '[bot]\nprefix = "!"\n\n[rules.greetings]\nyo = "Yo!"\n'
        )
        s = Settings()
        assert s.bot.prefix == "!"
        assert s.rules.greetings == {"yo": "Yo!"}

    def test_env_overrides_toml(self, in_tmp, monkeypatch):
        (in_tmp / "config.toml").write_text('[bot]\nprefix = "!"\n')
        monkeypatch.setenv("BOT__PREFIX", "#")
        assert Settings().bot.prefix == "#"

    def test_nested_env_var(self, in_tmp, monkeypatch):
        monkeypatch.setenv("RECONNECT__MAX_ATTEMPTS", "5")
        assert Settings().reconnect.max_attempts == 5

    def test_unknown_key_in_section_rejected(self, in_tmp):
        (in_tmp / "config.toml").write_text("[bot]\nprefx = '!'\n")
        with pytest.raises(ValidationError):
            Settings()


class TestValidation:
    @pytest.mark.parametrize("prefix", ["", "!!", " "])
    def test_bad_prefix(self, prefix):
        with pytest.raises(ValidationError):
            BotConfig(prefix=prefix)

    def test_quotes_must_not_be_empty(self):
        with pytest.raises(ValidationError):
            MessagesConfig(quotes=[])

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            ReconnectConfig(base_delay_seconds=-1)

    def test_negative_attempts_clamped(self):
        assert ReconnectConfig(max_attempts=-3).max_attempts == 0

    def test_concurrency_clamped_to_one(self):
        assert MediaConfig(max_concurrent_jobs=0).max_concurrent_jobs == 1


class TestSingleton:
    def test_get_settings_is_cached(self, in_tmp):
        assert get_settings() is get_settings()

    def test_reset_settings(self, in_tmp):
        first = get_settings()
        reset_settings()
        assert get_settings() is not first
