"""Prefix command matching and handlers.

Commands are an ordered list of (name, handler). Every entry whose
predicate matches runs, in list order; a failing handler is logged and the
rest still run.
"""

from __future__ import annotations

import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from danuu.config import Settings, get_settings
from danuu.logger import logger
from danuu.media import MediaPipeline
from danuu.types import Command, InteractiveMenu, MenuOption, NormalizedMessage, Transport
from danuu.utils import best_effort


def parse_command(
    message: NormalizedMessage,
    prefix: str,
    name: str,
    *,
    takes_argument: bool = False,
) -> Command | None:
    """Match ``{prefix}{name}`` against the normalized text.

    Commands without arguments must be the whole message. Commands with
    arguments also match ``{prefix}{name} <args>``; the argument is taken
    from the original-case text.
    """
    token = f"{prefix}{name}"
    text = message.text
    if text == token:
        return Command(name=name)
    if not takes_argument or not text.startswith(token) or not text[len(token)].isspace():
        return None
    original = message.original_text.strip()
    return Command(name=name, argument_text=original[len(token):].strip())


@dataclass(frozen=True)
class CommandContext:
    message: NormalizedMessage
    command: Command
    transport: Transport


type CommandHandler = Callable[[CommandContext], Awaitable[None]]


@dataclass(frozen=True)
class CommandEntry:
    name: str
    handler: CommandHandler
    takes_argument: bool = False


class CommandDispatcher:
    def __init__(
        self,
        media: MediaPipeline,
        settings: Settings | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._media = media
        self._settings = settings or get_settings()
        self._rng = rng or random.Random()
        self.entries: list[CommandEntry] = [
            CommandEntry("start", self._start),
            CommandEntry("ping", self._ping),
            CommandEntry("menu", self._menu),
            CommandEntry("info", self._info),
            CommandEntry("sticker", self._sticker),
            CommandEntry("quote", self._quote),
            CommandEntry("song", self._song, takes_argument=True),
        ]

    @property
    def prefix(self) -> str:
        return self._settings.bot.prefix

    def match(self, message: NormalizedMessage) -> list[tuple[CommandEntry, Command]]:
        matches = []
        for entry in self.entries:
            command = parse_command(
                message, self.prefix, entry.name, takes_argument=entry.takes_argument
            )
            if command is not None:
                matches.append((entry, command))
        return matches

    async def dispatch(self, message: NormalizedMessage, transport: Transport) -> list[str]:
        """Run every matching handler. Returns the names of the commands run."""
        ran: list[str] = []
        for entry, command in self.match(message):
            ctx = CommandContext(message=message, command=command, transport=transport)
            try:
                await entry.handler(ctx)
            except Exception:
                logger.exception("Command failed", command=entry.name, chat_id=message.chat_id)
            ran.append(entry.name)
        return ran

    # --- Handlers ---

    async def _reply(self, ctx: CommandContext, text: str) -> None:
        await best_effort(
            ctx.transport.send_text(ctx.message.chat_id, text),
            action=f"reply to {ctx.command.name}",
            chat_id=ctx.message.chat_id,
        )

    async def _start(self, ctx: CommandContext) -> None:
        await self._reply(ctx, self._settings.messages.start.format(prefix=self.prefix))

    async def _ping(self, ctx: CommandContext) -> None:
        await self._reply(ctx, "Pong!")

    def build_menu(self) -> InteractiveMenu:
        m = self._settings.messages
        return InteractiveMenu(
            title=m.menu_title,
            body=m.menu_body,
            footer=m.menu_footer,
            options=(
                MenuOption(id=f"{self.prefix}info", label="Info"),
                MenuOption(id=f"{self.prefix}ping", label="Ping"),
                MenuOption(id=f"{self.prefix}song", label="Song"),
            ),
        )

    async def _menu(self, ctx: CommandContext) -> None:
        await best_effort(
            ctx.transport.send_menu(ctx.message.chat_id, self.build_menu()),
            action="send menu",
            chat_id=ctx.message.chat_id,
        )

    async def _info(self, ctx: CommandContext) -> None:
        await self._reply(ctx, self._settings.messages.info)

    async def _sticker(self, ctx: CommandContext) -> None:
        if not ctx.message.has_image:
            await self._reply(ctx, self._settings.messages.sticker_usage.format(prefix=self.prefix))
            return
        data = await ctx.transport.download_media(ctx.message.ref)
        await ctx.transport.send_sticker(ctx.message.chat_id, data)

    async def _quote(self, ctx: CommandContext) -> None:
        await self._reply(ctx, self._rng.choice(self._settings.messages.quotes))

    async def _song(self, ctx: CommandContext) -> None:
        m = self._settings.messages
        query = ctx.command.argument_text
        if not query:
            await self._reply(ctx, m.song_usage.format(prefix=self.prefix))
            return
        await self._reply(ctx, m.song_searching.format(query=query))
        self._media.submit(query, ctx.message.chat_id, ctx.transport)
