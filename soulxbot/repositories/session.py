"""Repository for the stream_sessions table.

State-changing statements are conditional writes: opening relies on the
partial unique index over open sessions, and the first-chatter claim, the
question assignment and closing only touch rows still in the expected state.
"""

from __future__ import annotations

import logging
from datetime import datetime

import asyncpg

from soulxbot.core.database import acquire
from soulxbot.core.errors import Conflict
from soulxbot.models.session import FirstLeader, Session

logger = logging.getLogger(__name__)

_SESSION_COLUMNS = (
    "id, user_id, started_at, ended_at, twitch_id, title, first_user_id, qotd_id"
)


class SessionRepository:
    """Pure SQL operations for stream sessions."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== Lifecycle ====================

    async def open_session(self, user_id: str, started_at: datetime) -> Session:
        """Create an open session for *user_id*. Raises Conflict if one is already open."""
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO stream_sessions (user_id, started_at)
                VALUES ($1, $2)
                ON CONFLICT (user_id) WHERE ended_at IS NULL DO NOTHING
                RETURNING {_SESSION_COLUMNS}
                """,
                user_id,
                started_at,
            )
        if row is None:
            raise Conflict(f"User {user_id} already has an open session")
        return Session(**dict(row))

    async def get_session(self, session_id: int) -> Session | None:
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {_SESSION_COLUMNS} FROM stream_sessions WHERE id = $1", session_id
            )
        return Session(**dict(row)) if row else None

    async def get_open_session(self, user_id: str) -> Session | None:
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_SESSION_COLUMNS} FROM stream_sessions
                WHERE user_id = $1 AND ended_at IS NULL
                """,
                user_id,
            )
        return Session(**dict(row)) if row else None

    async def list_open_sessions(self) -> list[Session]:
        async with acquire(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_SESSION_COLUMNS} FROM stream_sessions
                WHERE ended_at IS NULL
                ORDER BY started_at
                """
            )
        return [Session(**dict(r)) for r in rows]

    async def backfill(self, session_id: int, twitch_id: str, title: str) -> None:
        """Fill in the external id and title, never overwriting values already set."""
        async with acquire(self.pool) as conn:
            await conn.execute(
                """
                UPDATE stream_sessions
                SET twitch_id = COALESCE(twitch_id, $2),
                    title     = COALESCE(title, $3)
                WHERE id = $1
                """,
                session_id,
                twitch_id,
                title,
            )

    async def close_session(self, session_id: int, ended_at: datetime) -> bool:
        """Set the end time. Returns False if the session was already closed."""
        async with acquire(self.pool) as conn:
            result = await conn.execute(
                "UPDATE stream_sessions SET ended_at = $2 WHERE id = $1 AND ended_at IS NULL",
                session_id,
                ended_at,
            )
        return result == "UPDATE 1"

    # ==================== First Chatter ====================

    async def claim_first_user(self, session_id: int, user_id: str) -> str | None:
        """Try to record *user_id* as the session's first chatter.

        Returns the winner actually stored, which differs from *user_id* when
        another claim got there first. Closed sessions never get a winner.
        """
        async with acquire(self.pool) as conn:
            winner = await conn.fetchval(
                """
                UPDATE stream_sessions SET first_user_id = $2
                WHERE id = $1 AND first_user_id IS NULL AND ended_at IS NULL
                RETURNING first_user_id
                """,
                session_id,
                user_id,
            )
            if winner is None:
                winner = await conn.fetchval(
                    "SELECT first_user_id FROM stream_sessions WHERE id = $1", session_id
                )
        return winner

    async def set_first_user(self, session_id: int, user_id: str) -> None:
        """Owner override of the first chatter."""
        async with acquire(self.pool) as conn:
            await conn.execute(
                "UPDATE stream_sessions SET first_user_id = $2 WHERE id = $1",
                session_id,
                user_id,
            )

    async def count_firsts(self, owner_id: str, user_id: str, since: datetime | None) -> int:
        """Number of *owner_id*'s sessions won by *user_id*, optionally since an epoch."""
        async with acquire(self.pool) as conn:
            count = await conn.fetchval(
                """
                SELECT COUNT(*) FROM stream_sessions
                WHERE user_id = $1 AND first_user_id = $2
                  AND ($3::timestamptz IS NULL OR started_at >= $3)
                """,
                owner_id,
                user_id,
                since,
            )
        return int(count or 0)

    async def first_leaders(
        self, owner_id: str, since: datetime | None, limit: int = 3
    ) -> list[FirstLeader]:
        async with acquire(self.pool) as conn:
            rows = await conn.fetch(
                """
                SELECT s.first_user_id AS user_id,
                       COALESCE(u.display_name, u.username) AS name,
                       COUNT(*) AS count
                FROM stream_sessions s
                JOIN users u ON u.id = s.first_user_id
                WHERE s.user_id = $1
                  AND ($2::timestamptz IS NULL OR s.started_at >= $2)
                GROUP BY s.first_user_id, u.display_name, u.username
                ORDER BY count DESC, name
                LIMIT $3
                """,
                owner_id,
                since,
                limit,
            )
        return [FirstLeader(user_id=r["user_id"], name=r["name"], count=int(r["count"])) for r in rows]

    # ==================== Question of the Day ====================

    async def assign_question(self, session_id: int, question_id: int) -> int | None:
        """Attach a question unless one is already set. Returns the stored question id."""
        async with acquire(self.pool) as conn:
            stored = await conn.fetchval(
                """
                UPDATE stream_sessions SET qotd_id = $2
                WHERE id = $1 AND qotd_id IS NULL
                RETURNING qotd_id
                """,
                session_id,
                question_id,
            )
            if stored is None:
                stored = await conn.fetchval(
                    "SELECT qotd_id FROM stream_sessions WHERE id = $1", session_id
                )
        return stored

    async def clear_question(self, session_id: int, question_id: int) -> bool:
        async with acquire(self.pool) as conn:
            result = await conn.execute(
                "UPDATE stream_sessions SET qotd_id = NULL WHERE id = $1 AND qotd_id = $2",
                session_id,
                question_id,
            )
        return result == "UPDATE 1"
