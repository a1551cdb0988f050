"""Inbound message routing.

Filters out what the bot must never answer (own messages, replays, groups,
status posts), gates unknown senders behind the permit notice, then hands
the message to the rule engine and the command dispatcher, in that order.
"""

from __future__ import annotations

from danuu.commands import CommandDispatcher
from danuu.config import Settings, get_settings
from danuu.logger import logger
from danuu.rules import RuleEngine
from danuu.types import InboundMessage, NormalizedMessage, PermitDecision, Transport
from danuu.utils import best_effort


def skip_reason(message: InboundMessage) -> str | None:
    """Why *message* is ignored by the router, or None if it should be handled."""
    if message.is_from_self:
        return "from_self"
    if not message.is_live:
        return "replay"
    if message.is_group:
        return "group"
    if message.is_status:
        return "status"
    return None


class MessageRouter:
    def __init__(
        self,
        rules: RuleEngine,
        commands: CommandDispatcher,
        settings: Settings | None = None,
    ) -> None:
        self._rules = rules
        self._commands = commands
        self._settings = settings or get_settings()

    async def check_permit(self, sender_id: str, transport: Transport) -> PermitDecision:
        """Unknown when the lookup says so or the lookup itself fails."""
        try:
            known = await transport.is_known_contact(sender_id)
        except Exception as exc:
            logger.warning(
                "Contact lookup failed, treating sender as unknown",
                sender_id=sender_id,
                err=str(exc),
            )
            return PermitDecision(known=False)
        return PermitDecision(known=bool(known))

    async def handle(self, message: InboundMessage, transport: Transport) -> None:
        reason = skip_reason(message)
        if reason is not None:
            logger.debug("Skipping message", reason=reason, chat_id=message.chat_id)
            return

        decision = await self.check_permit(message.sender_id, transport)
        if not decision.known:
            logger.info("Unknown sender, sending permit notice", sender_id=message.sender_id)
            await best_effort(
                transport.send_text(message.chat_id, self._settings.messages.permit_notice),
                action="send permit notice",
                chat_id=message.chat_id,
            )
            return

        logger.info("Received a message", chat_id=message.chat_id, text=message.text)
        normalized = NormalizedMessage.from_inbound(message)
        await self._rules.apply(normalized, transport)
        await self._commands.dispatch(normalized, transport)
