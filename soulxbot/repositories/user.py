"""Repository for users and stream_configs tables."""

from __future__ import annotations

import logging
from datetime import datetime

import asyncpg

from soulxbot.core.database import acquire
from soulxbot.models.user import EncryptedCredentials, SessionConfig, StreamUser, User

logger = logging.getLogger(__name__)

_STREAM_USER_COLUMNS = """
    u.id, u.username, u.display_name,
    c.api_key, c.bot_disabled, c.first_enabled, c.first_epoch,
    c.qotd_enabled, c.updated_at
"""


def _stream_user(row: asyncpg.Record) -> StreamUser:
    return StreamUser(
        user=User(id=row["id"], username=row["username"], display_name=row["display_name"]),
        config=SessionConfig(
            user_id=row["id"],
            api_key=row["api_key"],
            bot_disabled=row["bot_disabled"],
            first_enabled=row["first_enabled"],
            first_epoch=row["first_epoch"],
            qotd_enabled=row["qotd_enabled"],
            updated_at=row["updated_at"],
        ),
    )


class UserRepository:
    """Pure SQL operations for users / stream_configs."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== User Operations ====================

    async def upsert_user(self, user_id: str, username: str, display_name: str | None = None) -> User:
        """Insert a user, or refresh its names when the platform reports a change."""
        async with acquire(self.pool) as conn:
            await conn.execute(
                """
                INSERT INTO users (id, username, display_name)
                VALUES ($1, $2, $3)
                ON CONFLICT (id) DO UPDATE SET
                    username     = EXCLUDED.username,
                    display_name = EXCLUDED.display_name,
                    updated_at   = NOW()
                WHERE (users.username, users.display_name)
                    IS DISTINCT FROM (EXCLUDED.username, EXCLUDED.display_name)
                """,
                user_id,
                username,
                display_name,
            )
        return User(id=user_id, username=username, display_name=display_name)

    async def get_user(self, user_id: str) -> User | None:
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                "SELECT id, username, display_name FROM users WHERE id = $1", user_id
            )
        return User(**dict(row)) if row else None

    async def get_user_by_username(self, username: str) -> User | None:
        """Case-insensitive lookup by login name."""
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                """
                SELECT id, username, display_name FROM users
                WHERE lower(username) = lower($1)
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                username,
            )
        return User(**dict(row)) if row else None

    # ==================== Stream Config Operations ====================

    async def get_stream_user(self, user_id: str) -> StreamUser | None:
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_STREAM_USER_COLUMNS}
                FROM users u JOIN stream_configs c ON c.user_id = u.id
                WHERE u.id = $1
                """,
                user_id,
            )
        return _stream_user(row) if row else None

    async def get_stream_user_by_api_key(self, api_key: str) -> StreamUser | None:
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_STREAM_USER_COLUMNS}
                FROM users u JOIN stream_configs c ON c.user_id = u.id
                WHERE c.api_key = $1
                """,
                api_key,
            )
        return _stream_user(row) if row else None

    async def list_stream_users(self) -> list[StreamUser]:
        async with acquire(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_STREAM_USER_COLUMNS}
                FROM users u JOIN stream_configs c ON c.user_id = u.id
                ORDER BY u.username
                """
            )
        return [_stream_user(r) for r in rows]

    async def upsert_stream_config(self, user_id: str, api_key: str) -> SessionConfig:
        """Create the user's config with default flags, or rotate its capability token."""
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO stream_configs (user_id, api_key)
                VALUES ($1, $2)
                ON CONFLICT (user_id) DO UPDATE SET
                    api_key    = EXCLUDED.api_key,
                    updated_at = NOW()
                RETURNING user_id, api_key, bot_disabled, first_enabled, first_epoch,
                          qotd_enabled, updated_at
                """,
                user_id,
                api_key,
            )
        return SessionConfig(**dict(row))

    async def ensure_stream_config(self, user_id: str, api_key: str) -> SessionConfig:
        """Create the user's config if missing, keeping an existing capability token."""
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO stream_configs (user_id, api_key)
                VALUES ($1, $2)
                ON CONFLICT (user_id) DO UPDATE SET updated_at = NOW()
                RETURNING user_id, api_key, bot_disabled, first_enabled, first_epoch,
                          qotd_enabled, updated_at
                """,
                user_id,
                api_key,
            )
        return SessionConfig(**dict(row))

    async def reset_first_epoch(self, user_id: str, epoch: datetime) -> None:
        async with acquire(self.pool) as conn:
            await conn.execute(
                "UPDATE stream_configs SET first_epoch = $2, updated_at = NOW() WHERE user_id = $1",
                user_id,
                epoch,
            )

    # ==================== Credential Operations ====================

    async def get_credentials(self, user_id: str) -> EncryptedCredentials | None:
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                "SELECT user_id, access_token, refresh_token FROM stream_configs WHERE user_id = $1",
                user_id,
            )
        if not row:
            return None
        return EncryptedCredentials(
            user_id=row["user_id"],
            access_token=bytes(row["access_token"]) if row["access_token"] is not None else None,
            refresh_token=bytes(row["refresh_token"]) if row["refresh_token"] is not None else None,
        )

    async def save_credentials(
        self, user_id: str, access_token: bytes, refresh_token: bytes | None
    ) -> None:
        """Persist an already-encrypted token pair."""
        async with acquire(self.pool) as conn:
            result = await conn.execute(
                """
                UPDATE stream_configs
                SET access_token = $2, refresh_token = $3, updated_at = NOW()
                WHERE user_id = $1
                """,
                user_id,
                access_token,
                refresh_token,
            )
        if result != "UPDATE 1":
            logger.warning(f"No stream config to store credentials for user {user_id}")
