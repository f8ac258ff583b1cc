"""Chat command registry.

Maps a command token (first word after the trigger character) to a
handler ``handler(ctx, command, remainder)``. Outside production every
command also answers to ``<name>-dev`` so a second bot instance can be
tested in the same channel; the handler always receives the canonical name.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from soulxbot.models.session import Session
from soulxbot.models.user import StreamUser, User

LOGGER: logging.Logger = logging.getLogger("Dispatch")

DEV_SUFFIX = "-dev"


@dataclass
class MessageContext:
    """Everything a command handler knows about the message it handles."""

    channel_id: str
    user: User
    stream_user: StreamUser | None
    session: Session | None

    @property
    def is_owner(self) -> bool:
        return self.stream_user is not None and self.user.id == self.stream_user.id

    @property
    def live_session(self) -> Session | None:
        if self.session is not None and self.session.is_open:
            return self.session
        return None


CommandHandler = Callable[[MessageContext, str, str], Awaitable[None]]


@dataclass(frozen=True)
class Command:
    name: str
    handler: CommandHandler


class CommandRegistry:
    def __init__(self, *, production: bool, prefix: str = "!") -> None:
        self.production = production
        self.prefix = prefix
        self._commands: dict[str, Command] = {}

    def register(self, name: str, handler: CommandHandler) -> None:
        name = name.lower()
        tokens = [name] if self.production else [name, name + DEV_SUFFIX]
        for token in tokens:
            if token in self._commands:
                raise ValueError(f"Command already registered: {token}")
        command = Command(name=name, handler=handler)
        for token in tokens:
            self._commands[token] = command

    def register_all(self, commands: Iterable[Command]) -> None:
        for command in commands:
            self.register(command.name, command.handler)

    def resolve(self, token: str) -> Command | None:
        return self._commands.get(token.lower())

    @property
    def tokens(self) -> list[str]:
        return sorted(self._commands)

    def parse(self, text: str) -> tuple[str, str] | None:
        """Split ``!cmd rest of message`` into ``("cmd", "rest of message")``."""
        if not text or not text.startswith(self.prefix):
            return None
        parts = text[len(self.prefix) :].split(maxsplit=1)
        if not parts:
            return None
        remainder = parts[1].strip() if len(parts) > 1 else ""
        return parts[0].lower(), remainder

    async def dispatch(self, ctx: MessageContext, text: str) -> bool:
        """Run the handler for *text*. Returns True if a handler ran."""
        parsed = self.parse(text)
        if parsed is None:
            return False
        if ctx.stream_user is None or ctx.stream_user.config.bot_disabled:
            return False

        token, remainder = parsed
        command = self.resolve(token)
        if command is None:
            return False

        LOGGER.debug(f"[{ctx.channel_id}] {ctx.user.username}: !{token} -> {command.name}")
        try:
            await command.handler(ctx, command.name, remainder)
        except Exception:
            LOGGER.exception(f"Command !{token} failed in channel {ctx.channel_id}")
        return True
