"""Repository for the exclusions table (append-only)."""

from __future__ import annotations

import asyncpg

from soulxbot.core.database import acquire


class ExclusionRepository:
    """Usernames barred from winning first, per owner or globally."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def is_excluded(self, owner_id: str, username: str) -> bool:
        async with acquire(self.pool) as conn:
            return await conn.fetchval(
                """
                SELECT EXISTS (
                    SELECT 1 FROM exclusions
                    WHERE (owner_id = $1 OR owner_id IS NULL)
                      AND lower(username) = lower($2)
                )
                """,
                owner_id,
                username,
            )

    async def add_exclusion(self, owner_id: str | None, username: str) -> None:
        """Exclude *username*; ``owner_id=None`` excludes it in every channel."""
        async with acquire(self.pool) as conn:
            await conn.execute(
                "INSERT INTO exclusions (owner_id, username) VALUES ($1, $2)",
                owner_id,
                username.lower(),
            )
