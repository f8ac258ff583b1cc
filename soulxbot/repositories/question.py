"""Repository for the questions table."""

from __future__ import annotations

import logging

import asyncpg

from soulxbot.core.database import acquire
from soulxbot.core.errors import Conflict
from soulxbot.models.question import SKIP_DISABLE_THRESHOLD, Question

logger = logging.getLogger(__name__)

_QUESTION_COLUMNS = "id, text, disabled, skip_count, created_at"


class QuestionRepository:
    """Pure SQL operations for question-of-the-day entries."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def create_question(self, text: str) -> Question:
        """Insert a question. Raises Conflict on duplicate text."""
        try:
            async with acquire(self.pool) as conn:
                row = await conn.fetchrow(
                    f"INSERT INTO questions (text) VALUES ($1) RETURNING {_QUESTION_COLUMNS}",
                    text,
                )
        except asyncpg.UniqueViolationError as e:
            raise Conflict("Question already exists") from e
        return Question(**dict(row))

    async def get_question(self, question_id: int) -> Question | None:
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {_QUESTION_COLUMNS} FROM questions WHERE id = $1", question_id
            )
        return Question(**dict(row)) if row else None

    async def pick_random_question(self, owner_id: str) -> Question | None:
        """Random enabled question never used in one of *owner_id*'s sessions."""
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_QUESTION_COLUMNS} FROM questions q
                WHERE NOT q.disabled
                  AND NOT EXISTS (
                      SELECT 1 FROM stream_sessions s
                      WHERE s.qotd_id = q.id AND s.user_id = $1
                  )
                ORDER BY random()
                LIMIT 1
                """,
                owner_id,
            )
        return Question(**dict(row)) if row else None

    async def record_skip(self, question_id: int) -> Question | None:
        """Increment the skip counter, disabling the question past the threshold."""
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE questions
                SET skip_count = skip_count + 1,
                    disabled   = disabled OR skip_count + 1 > $2
                WHERE id = $1
                RETURNING {_QUESTION_COLUMNS}
                """,
                question_id,
                SKIP_DISABLE_THRESHOLD,
            )
        return Question(**dict(row)) if row else None
