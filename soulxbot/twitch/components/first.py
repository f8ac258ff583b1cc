"""
First chatter commands

Commands:
- !first: who was first this stream (the winner gets a 60s timeout for asking)
- !firstcount / !firstcount-all: how many times you were first
- !firstleaders / !firstleaders-all: top three first chatters
- !firstleaders-reset <owner>: start a new leaderboard period
- !firstgive <user> <owner>: set the first chatter for this stream
- !firstexclude <user> <owner>: bar a user from winning first in this channel
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from soulxbot.core.errors import SoulxbotError
from soulxbot.models.user import User
from soulxbot.repositories.exclusion import ExclusionRepository
from soulxbot.repositories.session import SessionRepository
from soulxbot.repositories.user import UserRepository
from soulxbot.services.chat import ChatSender
from soulxbot.services.twitch_api import TwitchAPIClient
from soulxbot.twitch.dispatch import Command, MessageContext

LOGGER: logging.Logger = logging.getLogger("FirstCommands")

FIRST_TIMEOUT_SECONDS = 60
LEADERBOARD_SIZE = 3


def _target_name(remainder: str) -> str:
    parts = remainder.split()
    return parts[0].lstrip("@") if parts else ""


class FirstCommands:
    def __init__(
        self,
        *,
        users: UserRepository,
        sessions: SessionRepository,
        exclusions: ExclusionRepository,
        twitch: TwitchAPIClient,
        chat: ChatSender,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.exclusions = exclusions
        self.twitch = twitch
        self.chat = chat
        self.clock = clock

    def commands(self) -> list[Command]:
        return [
            Command("first", self.first),
            Command("firstcount", self.firstcount),
            Command("firstcount-all", self.firstcount),
            Command("firstleaders", self.firstleaders),
            Command("firstleaders-all", self.firstleaders),
            Command("firstleaders-reset", self.firstleaders_reset),
            Command("firstgive", self.firstgive),
            Command("firstexclude", self.firstexclude),
        ]

    @staticmethod
    def _first_enabled(ctx: MessageContext) -> bool:
        return ctx.stream_user is not None and ctx.stream_user.config.first_enabled

    async def first(self, ctx: MessageContext, command: str, remainder: str) -> None:
        session = ctx.live_session
        if not self._first_enabled(ctx) or session is None or session.first_user_id is None:
            return

        if session.first_user_id != ctx.user.id:
            winner = await self.users.get_user(session.first_user_id)
            winner_name = winner.name if winner else session.first_user_id
            await self.chat.say(
                ctx.channel_id, f"Sorry {ctx.user.name}, you are not first. {winner_name} was!"
            )
            return

        try:
            await self.twitch.timeout_user(
                ctx.stream_user.id, ctx.user.id, FIRST_TIMEOUT_SECONDS, "You were first..."
            )
        except SoulxbotError as e:
            LOGGER.warning(f"Could not time out {ctx.user.username}: {type(e).__name__}: {e}")
        await self.chat.say(ctx.channel_id, f"Yes {ctx.user.name}! We KNOW. You were first...")

    async def firstcount(self, ctx: MessageContext, command: str, remainder: str) -> None:
        if not self._first_enabled(ctx):
            return
        since = None if command.endswith("-all") else ctx.stream_user.config.first_epoch
        count = await self.sessions.count_firsts(ctx.stream_user.id, ctx.user.id, since)
        await self.chat.say(ctx.channel_id, f"{ctx.user.name}, you have been first {count} times")

    async def firstleaders(self, ctx: MessageContext, command: str, remainder: str) -> None:
        if not self._first_enabled(ctx):
            return
        since = None if command.endswith("-all") else ctx.stream_user.config.first_epoch
        leaders = await self.sessions.first_leaders(ctx.stream_user.id, since, LEADERBOARD_SIZE)
        for rank, leader in enumerate(leaders, start=1):
            await self.chat.say(ctx.channel_id, f"{rank}. {leader.name} - {leader.count}")

    async def firstleaders_reset(self, ctx: MessageContext, command: str, remainder: str) -> None:
        if not ctx.is_owner:
            return
        epoch = self.clock()
        await self.users.reset_first_epoch(ctx.stream_user.id, epoch)
        ctx.stream_user.config.first_epoch = epoch
        LOGGER.info(f"First leaderboard reset for {ctx.stream_user.user.username}")
        await self.chat.say(ctx.channel_id, "First leaders reset")

    async def _find_user(self, username: str) -> User | None:
        user = await self.users.get_user_by_username(username)
        if user is not None:
            return user
        found = await self.twitch.get_users(logins=[username])
        if not found:
            return None
        return await self.users.upsert_user(found[0].id, found[0].login, found[0].display_name)

    async def firstgive(self, ctx: MessageContext, command: str, remainder: str) -> None:
        session = ctx.live_session
        target_name = _target_name(remainder)
        if not ctx.is_owner or not self._first_enabled(ctx) or session is None or not target_name:
            return

        target = await self._find_user(target_name)
        if target is None:
            await self.chat.say(ctx.channel_id, "That user does not exist")
            return

        await self.sessions.set_first_user(session.id, target.id)
        session.first_user_id = target.id
        LOGGER.info(f"First in session {session.id} given to {target.username}")
        await self.chat.say(ctx.channel_id, f"{target.username} has been set as first for this stream!")

    async def firstexclude(self, ctx: MessageContext, command: str, remainder: str) -> None:
        target_name = _target_name(remainder)
        if not ctx.is_owner or not target_name:
            return
        await self.exclusions.add_exclusion(ctx.stream_user.id, target_name)
        LOGGER.info(f"{target_name} excluded from first in {ctx.stream_user.user.username}")
        await self.chat.say(ctx.channel_id, f"{target_name} will be excluded from first")
