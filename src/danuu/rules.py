"""Keyword rules: auto-reply, auto-react and greetings.

Rules are evaluated in a fixed order against the normalized text and are
not exclusive: one message can trigger several of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from danuu.config import RulesConfig
from danuu.logger import logger
from danuu.types import NormalizedMessage, Transport
from danuu.utils import best_effort


@dataclass(frozen=True)
class RuleAction:
    rule: str  # "auto_reply" | "auto_react" | "greeting"
    kind: Literal["reply", "react"]
    value: str


def _normalize(word: str) -> str:
    return word.strip().lower()


class RuleEngine:
    def __init__(self, config: RulesConfig) -> None:
        self._keywords = {_normalize(k) for k in config.auto_reply_keywords if k.strip()}
        self._reply_text = config.auto_reply_text
        self._react_trigger = _normalize(config.react_trigger)
        self._react_emoji = config.react_emoji
        self._greetings = {_normalize(k): v for k, v in config.greetings.items()}

    def evaluate(self, text: str) -> list[RuleAction]:
        """Actions triggered by already-normalized *text*, in execution order."""
        actions: list[RuleAction] = []
        if text in self._keywords:
            actions.append(RuleAction("auto_reply", "reply", self._reply_text))
        if self._react_trigger and self._react_trigger in text:
            actions.append(RuleAction("auto_react", "react", self._react_emoji))
        greeting = self._greetings.get(text)
        if greeting is not None:
            actions.append(RuleAction("greeting", "reply", greeting))
        return actions

    async def apply(self, message: NormalizedMessage, transport: Transport) -> list[RuleAction]:
        """Run every triggered action. A failed send never stops the next one."""
        actions = self.evaluate(message.text)
        for action in actions:
            logger.debug("Rule matched", rule=action.rule, chat_id=message.chat_id)
            if action.kind == "reply":
                send = transport.send_text(message.chat_id, action.value)
            else:
                send = transport.send_reaction(message.chat_id, message.ref, action.value)
            await best_effort(send, action=f"apply {action.rule} rule", chat_id=message.chat_id)
        return actions
