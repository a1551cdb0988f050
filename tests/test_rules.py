"""Tests for the keyword rule engine."""

from __future__ import annotations

import pytest

from conftest import FakeTransport, make_message
from danuu.config import RulesConfig
from danuu.rules import RuleEngine
from danuu.types import NormalizedMessage


def _normalized(text: str) -> NormalizedMessage:
    return NormalizedMessage.from_inbound(make_message(text))


@pytest.fixture
def engine() -> RuleEngine:
    return RuleEngine(RulesConfig())


class TestEvaluate:
    @pytest.mark.parametrize("text", ["sv", "save", "සෙව්", "සෙවු"])
    def test_save_keywords_auto_reply(self, engine, text):
        actions = engine.evaluate(text)
        assert [(a.rule, a.value) for a in actions] == [("auto_reply", "HARI OYAWA AUTO SV")]

    def test_keyword_must_be_whole_message(self, engine):
        assert engine.evaluate("please sv") == []

    def test_react_trigger_is_substring(self, engine):
        actions = engine.evaluate("hey danuu bot")
        assert [(a.kind, a.value) for a in actions] == [("react", "\N{THUMBS UP SIGN}")]

    def test_greetings(self, engine):
        assert engine.evaluate("hello")[0].value == "*Hi! I'm DANUU-MD bot.*"
        assert engine.evaluate("hi")[0].value == "*Hello! How can I help you today?*"

    def test_rules_are_not_exclusive(self):
        engine = RuleEngine(RulesConfig(greetings={"danuu": "Hey!"}))
        actions = engine.evaluate("danuu")
        assert [a.rule for a in actions] == ["auto_react", "greeting"]

    def test_empty_trigger_disables_react(self):
        engine = RuleEngine(RulesConfig(react_trigger=""))
        assert engine.evaluate("anything") == []

    def test_config_keywords_are_normalized(self):
        engine = RuleEngine(RulesConfig(auto_reply_keywords=[" SAVE "], greetings={"Hey": "x"}))
        assert engine.evaluate("save")[0].rule == "auto_reply"
        assert engine.evaluate("hey")[0].rule == "greeting"


class TestApply:
    async def test_hello_sends_exactly_one_greeting(self, engine):
        transport = FakeTransport()
        await engine.apply(_normalized("  Hello "), transport)
        assert transport.texts == [("94770000001@s.whatsapp.net", "*Hi! I'm DANUU-MD bot.*")]
        assert transport.reactions == []

    async def test_react_targets_the_message(self, engine):
        transport = FakeTransport()
        message = _normalized("DANUU rocks")
        await engine.apply(message, transport)
        assert transport.reactions == [(message.chat_id, message.ref, "\N{THUMBS UP SIGN}")]

    async def test_failed_send_does_not_stop_later_rules(self):
        engine = RuleEngine(RulesConfig(greetings={"danuu": "Hey!"}))
        transport = FakeTransport()
        transport.fail_sends = True
        actions = await engine.apply(_normalized("danuu"), transport)
        assert len(actions) == 2
