"""Twitch Bot class: chat transport, channel subscriptions and outbound messages."""

from __future__ import annotations

import logging

import twitchio
from twitchio import eventsub
from twitchio.ext import commands

from soulxbot.core.config import Settings
from soulxbot.models.user import StreamUser, User
from soulxbot.repositories.user import UserRepository
from soulxbot.twitch.router import MessageRouter

LOGGER: logging.Logger = logging.getLogger("Bot")


class Bot(commands.Bot):
    """Receives chat over EventSub and hands every message to the MessageRouter.

    Commands are handled by soulxbot's own registry, not by
    ``twitchio.ext.commands``; the bot only provides transport.
    """

    def __init__(self, *, settings: Settings, users: UserRepository) -> None:
        self.settings = settings
        self.users = users
        self.router: MessageRouter | None = None
        self._subscribed_channels: set[str] = set()

        super().__init__(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            bot_id=settings.bot_id,
            prefix=settings.command_prefix,
        )

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def setup_hook(self) -> None:
        for stream_user in await self.users.list_stream_users():
            await self.join_channel(stream_user.id)
        LOGGER.info(f"Listening to {len(self._subscribed_channels)} channel(s)")

    async def load_tokens(self, path: str | None = None) -> None:
        if not self.settings.bot_access_token:
            LOGGER.warning("No bot access token configured, chat will be read-only")
            return
        await self.add_token(self.settings.bot_access_token, self.settings.bot_refresh_token)

    async def save_tokens(self, path: str | None = None) -> None:
        # Bot tokens come from the environment and are not persisted
        return None

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    async def join_channel(self, broadcaster_user_id: str) -> None:
        if broadcaster_user_id in self._subscribed_channels:
            LOGGER.debug(f"Already subscribed: {broadcaster_user_id}")
            return
        try:
            await self.subscribe_websocket(
                payload=eventsub.ChatMessageSubscription(
                    broadcaster_user_id=broadcaster_user_id, user_id=self.bot_id
                ),
                as_bot=True,
            )
        except twitchio.exceptions.TwitchioException as e:
            LOGGER.error(f"Failed to subscribe channel {broadcaster_user_id}: {e}")
            return
        self._subscribed_channels.add(broadcaster_user_id)
        LOGGER.info(f"Subscribed to chat for channel: {broadcaster_user_id}")

    async def on_registered(self, stream_user: StreamUser) -> None:
        await self.join_channel(stream_user.id)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def event_ready(self) -> None:
        LOGGER.info(f"Successfully logged in as: {self.bot_id}")

    async def event_message(self, payload: twitchio.ChatMessage) -> None:
        if self.router is None or payload.broadcaster is None:
            return
        LOGGER.debug(f"[{payload.chatter.name}#{payload.broadcaster.name}]: {payload.text}")
        chatter = User(
            id=payload.chatter.id,
            username=payload.chatter.name or payload.chatter.id,
            display_name=payload.chatter.display_name,
        )
        await self.router.handle_message(payload.broadcaster.id, chatter, payload.text or "")

    # ------------------------------------------------------------------
    # Outbound chat
    # ------------------------------------------------------------------

    async def say(self, channel_id: str, message: str) -> None:
        broadcaster = self.create_partialuser(user_id=channel_id)
        try:
            await broadcaster.send_message(
                message=message, sender=self.bot_id, token_for=self.bot_id
            )
        except twitchio.exceptions.TwitchioException as e:
            LOGGER.warning(f"Failed to send message to {channel_id}: {e}")
