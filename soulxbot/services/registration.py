"""Broadcaster registration: capability tokens and OAuth credential custody."""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

import jwt

from soulxbot.core.errors import NotFound, Unauthorized
from soulxbot.core.vault import derive_key, encrypt_token
from soulxbot.models.user import SessionConfig, StreamUser
from soulxbot.repositories.user import UserRepository
from soulxbot.services.twitch_api import TwitchAPIClient

logger = logging.getLogger(__name__)

STATE_TTL = timedelta(minutes=10)
STATE_AUDIENCE = "soulxbot:oauth-state"

RegisteredHook = Callable[[StreamUser], Awaitable[None]]


def new_api_key() -> str:
    return secrets.token_urlsafe(32)


class RegistrationService:
    """Registers broadcasters, by operator request or through Twitch OAuth."""

    def __init__(
        self,
        users: UserRepository,
        twitch: TwitchAPIClient,
        *,
        passphrase: str,
        on_registered: RegisteredHook | None = None,
    ) -> None:
        self.users = users
        self.twitch = twitch
        self._passphrase = passphrase
        self._state_key = hmac.new(derive_key(passphrase), b"oauth-state", "sha256").digest()
        self.on_registered = on_registered

    async def _notify(self, stream_user: StreamUser) -> None:
        if self.on_registered is not None:
            await self.on_registered(stream_user)

    async def register(self, username: str) -> SessionConfig:
        """Issue a fresh capability token for *username* (rotating any previous one)."""
        user = await self.users.get_user_by_username(username)
        if user is None:
            found = await self.twitch.get_users(logins=[username])
            if not found:
                raise NotFound("User not found, have user chat in channel first")
            user = await self.users.upsert_user(found[0].id, found[0].login, found[0].display_name)

        config = await self.users.upsert_stream_config(user.id, new_api_key())
        logger.info(f"Registered {user.username} ({user.id})")
        await self._notify(StreamUser(user=user, config=config))
        return config

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def create_state(self) -> str:
        """Signed, short-lived OAuth state value."""
        now = datetime.now(UTC)
        payload = {
            "aud": STATE_AUDIENCE,
            "nonce": secrets.token_urlsafe(16),
            "iat": now,
            "exp": now + STATE_TTL,
        }
        return jwt.encode(payload, self._state_key, algorithm="HS256")

    def verify_state(self, state: str | None) -> None:
        if not state:
            raise Unauthorized("Missing OAuth state")
        try:
            jwt.decode(state, self._state_key, algorithms=["HS256"], audience=STATE_AUDIENCE)
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid OAuth state: {e}")
            raise Unauthorized("Invalid OAuth state") from e

    def authorize_url(self) -> str:
        return self.twitch.authorize_url(self.create_state())

    async def complete_oauth(self, code: str, state: str | None) -> SessionConfig:
        """Exchange *code*, verify the identity token and store the encrypted token pair."""
        self.verify_state(state)
        pair = await self.twitch.exchange_authorization_code(code)
        if not pair.id_token:
            raise Unauthorized("Twitch did not return an identity token")
        claims = await self.twitch.verify_id_token(pair.id_token)

        user_id = str(claims["sub"])
        # preferred_username is the display name, which may differ from the login
        found = await self.twitch.get_users(ids=[user_id])
        if found:
            login, display_name = found[0].login, found[0].display_name
        else:
            display_name = claims.get("preferred_username") or user_id
            login = display_name.lower()
        user = await self.users.upsert_user(user_id, login, display_name)
        config = await self.users.ensure_stream_config(user.id, new_api_key())
        await self.users.save_credentials(
            user.id,
            encrypt_token(pair.access_token, self._passphrase),
            encrypt_token(pair.refresh_token, self._passphrase) if pair.refresh_token else None,
        )
        logger.info(f"Stored Twitch credentials for {user.username} ({user.id})")
        await self._notify(StreamUser(user=user, config=config))
        return config
