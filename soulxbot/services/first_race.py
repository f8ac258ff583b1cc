"""First-chatter race: award "first" to exactly one eligible chatter per session."""

from __future__ import annotations

import logging

from soulxbot.models.session import Session
from soulxbot.models.user import StreamUser, User
from soulxbot.repositories.exclusion import ExclusionRepository
from soulxbot.repositories.session import SessionRepository
from soulxbot.services.chat import ChatSender

logger = logging.getLogger(__name__)


class FirstRaceResolver:
    def __init__(
        self,
        sessions: SessionRepository,
        exclusions: ExclusionRepository,
        chat: ChatSender,
    ) -> None:
        self.sessions = sessions
        self.exclusions = exclusions
        self.chat = chat

    async def is_eligible(self, owner: StreamUser, sender: User) -> bool:
        if sender.id == owner.id:
            return False
        return not await self.exclusions.is_excluded(owner.id, sender.username)

    async def evaluate(self, owner: StreamUser, session: Session | None, sender: User) -> bool:
        """Try to make *sender* the session's first chatter.

        The claim is a conditional write; *session* is updated in place with
        the winner actually stored, and only the real winner is announced.
        Returns True if *sender* won.
        """
        if session is None or not session.is_open:
            return False
        if not owner.config.first_enabled or session.first_user_id is not None:
            return False
        if not await self.is_eligible(owner, sender):
            return False

        winner = await self.sessions.claim_first_user(session.id, sender.id)
        session.first_user_id = winner
        if winner != sender.id:
            logger.debug(f"First claim by {sender.username} lost to {winner} in session {session.id}")
            return False

        logger.info(f"{sender.username} is first in session {session.id}")
        await self.chat.say(owner.id, f"Congratulations {sender.name}! You're first!")
        return True
