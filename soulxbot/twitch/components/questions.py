"""
Question of the day commands

Commands:
- !qotd: show this stream's question (one is picked on first use)
- !skipqotd <owner>: skip the current question; skipped three times it is retired
"""

from __future__ import annotations

import logging

from soulxbot.services.chat import ChatSender
from soulxbot.services.questions import QuestionService
from soulxbot.twitch.dispatch import Command, MessageContext

LOGGER: logging.Logger = logging.getLogger("QuestionCommands")


class QuestionCommands:
    def __init__(self, *, questions: QuestionService, chat: ChatSender) -> None:
        self.questions = questions
        self.chat = chat

    def commands(self) -> list[Command]:
        return [
            Command("qotd", self.qotd),
            Command("skipqotd", self.skipqotd),
        ]

    @staticmethod
    def _qotd_enabled(ctx: MessageContext) -> bool:
        return ctx.stream_user is not None and ctx.stream_user.config.qotd_enabled

    async def qotd(self, ctx: MessageContext, command: str, remainder: str) -> None:
        session = ctx.live_session
        if not self._qotd_enabled(ctx) or session is None:
            return
        text = await self.questions.question_for_session(session)
        await self.chat.say(ctx.channel_id, text)

    async def skipqotd(self, ctx: MessageContext, command: str, remainder: str) -> None:
        session = ctx.live_session
        if not ctx.is_owner or not self._qotd_enabled(ctx) or session is None:
            return
        if session.qotd_id is None:
            return
        await self.questions.skip_question(session)
        await self.chat.say(
            ctx.channel_id, "Question of the day skipped, enter !qotd to get a new question"
        )
