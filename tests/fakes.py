"""In-memory stand-ins for the repositories, the chat transport and Twitch.

The fake repositories keep the same conditional-write contracts as the SQL
ones: claims and assignments only succeed while the stored field is unset,
and every read returns a copy so callers never share state with storage.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import replace
from datetime import datetime

from soulxbot.core.errors import Conflict
from soulxbot.models.platform import BroadcastStatus, PlatformUser
from soulxbot.models.question import SKIP_DISABLE_THRESHOLD, Question
from soulxbot.models.session import FirstLeader, Session
from soulxbot.models.user import EncryptedCredentials, SessionConfig, StreamUser, User


class FakeDatabase:
    def __init__(self) -> None:
        self.users: dict[str, User] = {}
        self.configs: dict[str, SessionConfig] = {}
        self.credentials: dict[str, EncryptedCredentials] = {}
        self.sessions: dict[int, Session] = {}
        self.questions: dict[int, Question] = {}
        self.exclusions: list[tuple[str | None, str]] = []
        self.session_ids = itertools.count(1)
        self.question_ids = itertools.count(1)
        self.fail_next: Exception | None = None

        self.user_repo = FakeUserRepository(self)
        self.session_repo = FakeSessionRepository(self)
        self.question_repo = FakeQuestionRepository(self)
        self.exclusion_repo = FakeExclusionRepository(self)

    async def io(self) -> None:
        """Yield to the loop like a real round trip; raise an injected failure once."""
        await asyncio.sleep(0)
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    # Convenience seeding helpers

    def add_user(self, user_id: str, username: str, display_name: str | None = None) -> User:
        user = User(id=user_id, username=username, display_name=display_name or username)
        self.users[user_id] = user
        return user

    def add_stream_user(self, user_id: str, username: str, api_key: str, **flags) -> StreamUser:
        user = self.add_user(user_id, username)
        config = SessionConfig(user_id=user_id, api_key=api_key, first_epoch=flags.pop("first_epoch", None), **flags)
        self.configs[user_id] = config
        return StreamUser(user=replace(user), config=replace(config))

    def add_session(self, user_id: str, started_at: datetime, **fields) -> Session:
        session = Session(id=next(self.session_ids), user_id=user_id, started_at=started_at, **fields)
        self.sessions[session.id] = session
        return replace(session)

    def add_question(self, text: str, **fields) -> Question:
        question = Question(id=next(self.question_ids), text=text, **fields)
        self.questions[question.id] = question
        return replace(question)

    def open_sessions(self, user_id: str) -> list[Session]:
        return [s for s in self.sessions.values() if s.user_id == user_id and s.ended_at is None]


class FakeUserRepository:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    async def upsert_user(self, user_id: str, username: str, display_name: str | None = None) -> User:
        await self.db.io()
        self.db.users[user_id] = User(id=user_id, username=username, display_name=display_name)
        return replace(self.db.users[user_id])

    async def get_user(self, user_id: str) -> User | None:
        await self.db.io()
        user = self.db.users.get(user_id)
        return replace(user) if user else None

    async def get_user_by_username(self, username: str) -> User | None:
        await self.db.io()
        for user in self.db.users.values():
            if user.username.lower() == username.lower():
                return replace(user)
        return None

    def _stream_user(self, user_id: str) -> StreamUser | None:
        config = self.db.configs.get(user_id)
        if config is None:
            return None
        return StreamUser(user=replace(self.db.users[user_id]), config=replace(config))

    async def get_stream_user(self, user_id: str) -> StreamUser | None:
        await self.db.io()
        return self._stream_user(user_id)

    async def get_stream_user_by_api_key(self, api_key: str) -> StreamUser | None:
        await self.db.io()
        for config in self.db.configs.values():
            if config.api_key == api_key:
                return self._stream_user(config.user_id)
        return None

    async def list_stream_users(self) -> list[StreamUser]:
        await self.db.io()
        return [self._stream_user(user_id) for user_id in self.db.configs]

    async def upsert_stream_config(self, user_id: str, api_key: str) -> SessionConfig:
        await self.db.io()
        existing = self.db.configs.get(user_id)
        if existing is None:
            self.db.configs[user_id] = SessionConfig(user_id=user_id, api_key=api_key)
        else:
            existing.api_key = api_key
        return replace(self.db.configs[user_id])

    async def ensure_stream_config(self, user_id: str, api_key: str) -> SessionConfig:
        await self.db.io()
        self.db.configs.setdefault(user_id, SessionConfig(user_id=user_id, api_key=api_key))
        return replace(self.db.configs[user_id])

    async def reset_first_epoch(self, user_id: str, epoch: datetime) -> None:
        await self.db.io()
        self.db.configs[user_id].first_epoch = epoch

    async def get_credentials(self, user_id: str) -> EncryptedCredentials | None:
        await self.db.io()
        creds = self.db.credentials.get(user_id)
        return replace(creds) if creds else None

    async def save_credentials(self, user_id: str, access_token: bytes, refresh_token: bytes | None) -> None:
        await self.db.io()
        self.db.credentials[user_id] = EncryptedCredentials(
            user_id=user_id, access_token=access_token, refresh_token=refresh_token
        )


class FakeSessionRepository:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    async def open_session(self, user_id: str, started_at: datetime) -> Session:
        await self.db.io()
        if self.db.open_sessions(user_id):
            raise Conflict(f"User {user_id} already has an open session")
        return self.db.add_session(user_id, started_at)

    async def get_session(self, session_id: int) -> Session | None:
        await self.db.io()
        session = self.db.sessions.get(session_id)
        return replace(session) if session else None

    async def get_open_session(self, user_id: str) -> Session | None:
        await self.db.io()
        open_sessions = self.db.open_sessions(user_id)
        return replace(open_sessions[0]) if open_sessions else None

    async def list_open_sessions(self) -> list[Session]:
        await self.db.io()
        return [replace(s) for s in self.db.sessions.values() if s.ended_at is None]

    async def backfill(self, session_id: int, twitch_id: str, title: str) -> None:
        await self.db.io()
        session = self.db.sessions[session_id]
        if session.twitch_id is None:
            session.twitch_id = twitch_id
        if session.title is None:
            session.title = title

    async def close_session(self, session_id: int, ended_at: datetime) -> bool:
        await self.db.io()
        session = self.db.sessions[session_id]
        if session.ended_at is not None:
            return False
        session.ended_at = ended_at
        return True

    async def claim_first_user(self, session_id: int, user_id: str) -> str | None:
        await self.db.io()
        session = self.db.sessions[session_id]
        if session.first_user_id is None and session.ended_at is None:
            session.first_user_id = user_id
        return session.first_user_id

    async def set_first_user(self, session_id: int, user_id: str) -> None:
        await self.db.io()
        self.db.sessions[session_id].first_user_id = user_id

    def _owned(self, owner_id: str, since: datetime | None) -> list[Session]:
        return [
            s
            for s in self.db.sessions.values()
            if s.user_id == owner_id and (since is None or s.started_at >= since)
        ]

    async def count_firsts(self, owner_id: str, user_id: str, since: datetime | None) -> int:
        await self.db.io()
        return sum(1 for s in self._owned(owner_id, since) if s.first_user_id == user_id)

    async def first_leaders(self, owner_id: str, since: datetime | None, limit: int = 3) -> list[FirstLeader]:
        await self.db.io()
        counts: dict[str, int] = {}
        for s in self._owned(owner_id, since):
            if s.first_user_id is not None:
                counts[s.first_user_id] = counts.get(s.first_user_id, 0) + 1
        leaders = [
            FirstLeader(user_id=uid, name=self.db.users[uid].name, count=n) for uid, n in counts.items()
        ]
        leaders.sort(key=lambda leader: (-leader.count, leader.name))
        return leaders[:limit]

    async def assign_question(self, session_id: int, question_id: int) -> int | None:
        await self.db.io()
        session = self.db.sessions[session_id]
        if session.qotd_id is None:
            session.qotd_id = question_id
        return session.qotd_id

    async def clear_question(self, session_id: int, question_id: int) -> bool:
        await self.db.io()
        session = self.db.sessions[session_id]
        if session.qotd_id != question_id:
            return False
        session.qotd_id = None
        return True


class FakeQuestionRepository:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    async def create_question(self, text: str) -> Question:
        await self.db.io()
        if any(q.text == text for q in self.db.questions.values()):
            raise Conflict("Question already exists")
        return self.db.add_question(text)

    async def get_question(self, question_id: int) -> Question | None:
        await self.db.io()
        question = self.db.questions.get(question_id)
        return replace(question) if question else None

    async def pick_random_question(self, owner_id: str) -> Question | None:
        await self.db.io()
        used = {s.qotd_id for s in self.db.sessions.values() if s.user_id == owner_id}
        for question in self.db.questions.values():
            if not question.disabled and question.id not in used:
                return replace(question)
        return None

    async def record_skip(self, question_id: int) -> Question | None:
        await self.db.io()
        question = self.db.questions.get(question_id)
        if question is None:
            return None
        question.skip_count += 1
        question.disabled = question.disabled or question.skip_count > SKIP_DISABLE_THRESHOLD
        return replace(question)


class FakeExclusionRepository:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    async def is_excluded(self, owner_id: str, username: str) -> bool:
        await self.db.io()
        return any(
            (scope is None or scope == owner_id) and name == username.lower()
            for scope, name in self.db.exclusions
        )

    async def add_exclusion(self, owner_id: str | None, username: str) -> None:
        await self.db.io()
        self.db.exclusions.append((owner_id, username.lower()))


class FakeChat:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    async def say(self, channel_id: str, message: str) -> None:
        self.messages.append((channel_id, message))

    def texts(self, channel_id: str | None = None) -> list[str]:
        return [m for c, m in self.messages if channel_id is None or c == channel_id]


class FakeStatusSource:
    """Scripted Twitch stream status: live, offline, or an error to raise."""

    def __init__(self) -> None:
        self.live: dict[str, BroadcastStatus] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []

    def go_live(self, user_id: str, stream_id: str = "stream-1", title: str = "Just chatting") -> None:
        self.live[user_id] = BroadcastStatus(id=stream_id, user_id=user_id, user_login=user_id, title=title)

    def go_offline(self, user_id: str) -> None:
        self.live.pop(user_id, None)

    async def get_broadcast_status(self, user_id: str) -> BroadcastStatus | None:
        self.calls.append(user_id)
        await asyncio.sleep(0)
        error = self.errors.pop(user_id, None)
        if error is not None:
            raise error
        return self.live.get(user_id)


class FakeTwitch(FakeStatusSource):
    """Adds the calls command handlers make on a broadcaster's behalf."""

    def __init__(self) -> None:
        super().__init__()
        self.platform_users: dict[str, PlatformUser] = {}
        self.timeouts: list[tuple[str, str, int, str]] = []
        self.timeout_error: Exception | None = None

    async def get_users(self, logins=(), ids=()) -> list[PlatformUser]:
        wanted = {login.lower() for login in logins}
        return [u for u in self.platform_users.values() if u.login in wanted or u.id in ids]

    async def timeout_user(self, owner_id: str, target_user_id: str, seconds: int, reason: str) -> None:
        if self.timeout_error is not None:
            raise self.timeout_error
        self.timeouts.append((owner_id, target_user_id, seconds, reason))
