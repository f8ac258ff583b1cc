"""Repository layer: plain SQL over an asyncpg pool."""

from .exclusion import ExclusionRepository
from .question import QuestionRepository
from .session import SessionRepository
from .user import UserRepository

__all__ = [
    "ExclusionRepository",
    "QuestionRepository",
    "SessionRepository",
    "UserRepository",
]
