"""Question of the day: per-session question selection and skipping."""

from __future__ import annotations

import logging

from soulxbot.core.errors import NotFound
from soulxbot.models.question import Question
from soulxbot.models.session import Session
from soulxbot.repositories.question import QuestionRepository
from soulxbot.repositories.session import SessionRepository

logger = logging.getLogger(__name__)

DEFAULT_QUESTION = "Go ask ChatGPT for your question!"


class QuestionService:
    def __init__(self, questions: QuestionRepository, sessions: SessionRepository) -> None:
        self.questions = questions
        self.sessions = sessions

    async def create_question(self, text: str) -> Question:
        question = await self.questions.create_question(text.strip())
        logger.info(f"Question {question.id} created")
        return question

    async def get_question(self, question_id: int) -> Question:
        question = await self.questions.get_question(question_id)
        if question is None:
            raise NotFound(f"Question {question_id} not found")
        return question

    async def question_for_session(self, session: Session) -> str:
        """Text of the session's question, picking one if none is attached yet.

        Concurrent callers agree on a single question: assignment only
        succeeds while the session has none, and losers read back the winner.
        """
        if session.qotd_id is not None:
            existing = await self.questions.get_question(session.qotd_id)
            if existing is not None:
                return existing.text

        candidate = await self.questions.pick_random_question(session.user_id)
        if candidate is None:
            return DEFAULT_QUESTION

        stored = await self.sessions.assign_question(session.id, candidate.id)
        session.qotd_id = stored
        if stored is None or stored == candidate.id:
            return candidate.text
        return (await self.get_question(stored)).text

    async def skip_question(self, session: Session) -> Question | None:
        """Count a skip against the session's question and detach it.

        Returns the updated question, or None when the session had none.
        """
        if session.qotd_id is None:
            return None
        question_id = session.qotd_id
        question = await self.questions.record_skip(question_id)
        await self.sessions.clear_question(session.id, question_id)
        session.qotd_id = None
        if question is not None and question.disabled:
            logger.info(f"Question {question_id} disabled after {question.skip_count} skips")
        return question
