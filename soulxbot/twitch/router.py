"""Inbound chat pipeline: record the chatter, run the first race, dispatch commands."""

from __future__ import annotations

import logging

from soulxbot.core.errors import SoulxbotError
from soulxbot.models.user import User
from soulxbot.repositories.session import SessionRepository
from soulxbot.repositories.user import UserRepository
from soulxbot.services.first_race import FirstRaceResolver
from soulxbot.twitch.dispatch import CommandRegistry, MessageContext

LOGGER: logging.Logger = logging.getLogger("Router")


class MessageRouter:
    def __init__(
        self,
        *,
        bot_id: str,
        users: UserRepository,
        sessions: SessionRepository,
        first_race: FirstRaceResolver,
        registry: CommandRegistry,
    ) -> None:
        self.bot_id = bot_id
        self.users = users
        self.sessions = sessions
        self.first_race = first_race
        self.registry = registry

    async def handle_message(self, channel_id: str, chatter: User, text: str) -> MessageContext | None:
        """Process one chat message. Returns the context it was handled with, if any."""
        if chatter.id == self.bot_id:
            return None

        try:
            user = await self.users.upsert_user(chatter.id, chatter.username, chatter.display_name)
            stream_user = await self.users.get_stream_user(channel_id)
            if stream_user is None:
                LOGGER.debug(f"Ignoring message in unregistered channel {channel_id}")
                return None
            session = await self.sessions.get_open_session(stream_user.id)
            ctx = MessageContext(
                channel_id=channel_id, user=user, stream_user=stream_user, session=session
            )
            await self.first_race.evaluate(stream_user, session, user)
        except SoulxbotError as e:
            LOGGER.warning(f"Dropped message in {channel_id}: {type(e).__name__}: {e}")
            return None

        await self.registry.dispatch(ctx, text)
        return ctx
