"""PostgreSQL connection management and schema setup."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import asyncpg

from soulxbot.core.errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class PoolConfig:
    """Database pool configuration with sensible defaults."""

    min_size: int = 1
    max_size: int = 5
    timeout: float = 5.0
    command_timeout: float = 15.0
    max_inactive_connection_lifetime: float = 300.0
    max_retries: int = 3
    retry_delay: float = 3.0


class DatabaseManager:
    """Manages the asyncpg pool lifecycle with retry on connect."""

    def __init__(self, database_url: str, config: PoolConfig | None = None, *, ssl: bool = False):
        self.database_url = database_url
        self.config = config or PoolConfig()
        self.ssl = ssl
        self._pool: asyncpg.Pool | None = None

    def _pool_kwargs(self) -> dict[str, Any]:
        cfg = self.config
        kwargs: dict[str, Any] = {
            "dsn": self.database_url,
            "min_size": cfg.min_size,
            "max_size": cfg.max_size,
            "timeout": cfg.timeout,
            "command_timeout": cfg.command_timeout,
            "max_inactive_connection_lifetime": cfg.max_inactive_connection_lifetime,
        }
        if self.ssl:
            kwargs["ssl"] = "require"
        return kwargs

    async def connect(self) -> None:
        """Initialize database connection pool with retry."""
        if self._pool is not None:
            logger.warning("Database pool already initialized")
            return

        cfg = self.config
        for attempt in range(1, cfg.max_retries + 1):
            try:
                self._pool = await asyncpg.create_pool(**self._pool_kwargs())

                # Verify pool is usable
                async with self._pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")

                logger.info(f"Database pool created and verified (size={cfg.min_size}-{cfg.max_size})")
                return
            except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
                if self._pool is not None:
                    await self._pool.close()
                    self._pool = None
                if attempt < cfg.max_retries:
                    delay = cfg.retry_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Database connection attempt {attempt}/{cfg.max_retries} failed: "
                        f"{type(e).__name__}: {e}, retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(
                        f"Database connection failed after {cfg.max_retries} attempts: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        logger.info("Database pool closed")

    async def check_health(self) -> bool:
        """Test if pool can actually execute a query."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire(timeout=2.0) as conn:
                await conn.fetchval("SELECT 1")
            return True
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError):
            return False

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the database connection pool. Raises if not initialized."""
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call connect() first.")
        return self._pool


@asynccontextmanager
async def acquire(pool: asyncpg.Pool) -> AsyncIterator[asyncpg.Connection]:
    """Borrow a connection, translating storage failures into PersistenceError.

    Unique violations pass through untouched so repositories can map them
    onto their own Conflict semantics.
    """
    try:
        async with pool.acquire() as conn:
            yield conn
    except asyncpg.UniqueViolationError:
        raise
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        logger.warning(f"Database operation failed: {type(e).__name__}: {e}")
        raise PersistenceError(f"{type(e).__name__}: {e}") from e


async def setup_database_schema(connection: asyncpg.Connection) -> None:
    """Create tables and indexes if they do not exist yet."""
    await connection.execute(
        """CREATE TABLE IF NOT EXISTS users(
            id TEXT PRIMARY KEY,
            username TEXT NOT NULL,
            display_name TEXT,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
        )"""
    )
    await connection.execute(
        "CREATE INDEX IF NOT EXISTS users_username_idx ON users (lower(username))"
    )

    await connection.execute(
        """CREATE TABLE IF NOT EXISTS stream_configs(
            id SERIAL PRIMARY KEY,
            user_id TEXT NOT NULL UNIQUE REFERENCES users(id),
            bot_disabled BOOLEAN NOT NULL DEFAULT false,
            first_enabled BOOLEAN NOT NULL DEFAULT true,
            first_epoch TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP,
            qotd_enabled BOOLEAN NOT NULL DEFAULT true,
            api_key TEXT NOT NULL UNIQUE,
            access_token BYTEA,
            refresh_token BYTEA,
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
        )"""
    )

    await connection.execute(
        """CREATE TABLE IF NOT EXISTS questions(
            id SERIAL PRIMARY KEY,
            text TEXT NOT NULL UNIQUE,
            disabled BOOLEAN NOT NULL DEFAULT false,
            skip_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
        )"""
    )

    await connection.execute(
        """CREATE TABLE IF NOT EXISTS stream_sessions(
            id SERIAL PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id),
            twitch_id TEXT,
            title TEXT,
            started_at TIMESTAMP WITH TIME ZONE NOT NULL,
            ended_at TIMESTAMP WITH TIME ZONE,
            first_user_id TEXT REFERENCES users(id),
            qotd_id INTEGER REFERENCES questions(id) ON DELETE RESTRICT
        )"""
    )
    # At most one open session per owner
    await connection.execute(
        """CREATE UNIQUE INDEX IF NOT EXISTS stream_sessions_open_idx
            ON stream_sessions (user_id) WHERE ended_at IS NULL"""
    )

    await connection.execute(
        """CREATE TABLE IF NOT EXISTS exclusions(
            id SERIAL PRIMARY KEY,
            owner_id TEXT REFERENCES users(id),
            username TEXT NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
        )"""
    )
    await connection.execute(
        "CREATE INDEX IF NOT EXISTS exclusions_username_idx ON exclusions (lower(username))"
    )
