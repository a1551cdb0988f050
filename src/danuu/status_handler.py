"""Status auto-view: mark contacts' status posts as read and react to them."""

from __future__ import annotations

from danuu.config import StatusConfig
from danuu.logger import logger
from danuu.types import InboundMessage, Transport
from danuu.utils import best_effort


class StatusHandler:
    def __init__(self, config: StatusConfig) -> None:
        self._config = config

    def wants(self, message: InboundMessage) -> bool:
        return (
            self._config.auto_view
            and message.is_status
            and message.is_live
            and not message.is_from_self
        )

    async def handle(self, message: InboundMessage, transport: Transport) -> bool:
        """Returns True when the status was viewed (receipt and reaction attempted)."""
        if not self.wants(message):
            return False

        logger.info("Viewing status", author=message.sender_id)
        # Receipt and reaction are independent; one failing doesn't skip the other.
        await best_effort(
            transport.mark_read(message.ref),
            action="mark status as read",
            author=message.sender_id,
        )
        await best_effort(
            transport.send_reaction(message.sender_id, message.ref, self._config.react_emoji),
            action="react to status",
            author=message.sender_id,
        )
        return True
