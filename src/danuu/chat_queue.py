"""Per-chat serialization of inbound messages.

Messages for one chat are handled strictly in arrival order; different
chats proceed concurrently.

asyncio.ensure_future doesn't run the coroutine synchronously up to the
first await. So the drain is eagerly marked active in the synchronous
caller and cleaned up in the async finally block.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from danuu.logger import logger
from danuu.types import InboundMessage

type MessageHandler = Callable[[InboundMessage], Awaitable[None]]


@dataclass
class ChatState:
    active: bool = False
    pending: deque[InboundMessage] = field(default_factory=deque)
    task: asyncio.Future[None] | None = None


class ChatQueue:
    def __init__(self, handler: MessageHandler) -> None:
        self._handler = handler
        self._chats: dict[str, ChatState] = {}
        self._shutting_down = False

    def enqueue(self, message: InboundMessage) -> None:
        """Queue *message* behind any in-flight messages for the same chat."""
        if self._shutting_down:
            return

        state = self._chats.setdefault(message.chat_id, ChatState())
        state.pending.append(message)
        if state.active:
            logger.debug("Chat busy, message queued", chat_id=message.chat_id)
            return

        state.active = True
        state.task = asyncio.ensure_future(self._drain(message.chat_id, state))

    async def _drain(self, chat_id: str, state: ChatState) -> None:
        try:
            while state.pending:
                message = state.pending.popleft()
                try:
                    await self._handler(message)
                except Exception:
                    logger.exception(
                        "Message handling failed",
                        chat_id=chat_id,
                        message_id=message.ref.message_id,
                    )
        finally:
            state.active = False
            state.task = None
            if not state.pending:
                self._chats.pop(chat_id, None)

    async def join(self) -> None:
        """Wait until every queued message has been handled."""
        while True:
            tasks = [s.task for s in self._chats.values() if s.task is not None]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Drop pending messages and cancel in-flight handlers."""
        self._shutting_down = True
        tasks = []
        for state in self._chats.values():
            state.pending.clear()
            if state.task is not None:
                state.task.cancel()
                tasks.append(state.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._chats.clear()
