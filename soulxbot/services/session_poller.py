"""Broadcast session lifecycle: go-live, status polling and closure.

Each open session gets one asyncio task that polls Twitch on a fixed
interval. The database row is the authority on a session's state; the
in-memory handle only tracks the task. A poller stops on its own once
Twitch reports the channel offline and the row is closed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from soulxbot.core.errors import SoulxbotError, Unauthorized
from soulxbot.models.platform import BroadcastStatus
from soulxbot.models.session import Session, SessionState
from soulxbot.repositories.session import SessionRepository
from soulxbot.repositories.user import UserRepository

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 300.0


class StatusSource(Protocol):
    async def get_broadcast_status(self, user_id: str) -> BroadcastStatus | None: ...


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class PollerHandle:
    session_id: int
    owner_id: str
    state: SessionState = SessionState.OPENING
    task: asyncio.Task | None = field(default=None, repr=False)


class SessionPoller:
    """Opens sessions and runs one status poll loop per open session."""

    def __init__(
        self,
        sessions: SessionRepository,
        users: UserRepository,
        status_source: StatusSource,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.sessions = sessions
        self.users = users
        self.status_source = status_source
        self.interval = interval
        self.clock = clock
        self._pollers: dict[int, PollerHandle] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def open_session(self, capability_token: str) -> Session:
        """Open a session for the owner of *capability_token* and start polling it.

        Raises Unauthorized for an unknown token and Conflict when the owner
        already has an open session.
        """
        if not capability_token:
            raise Unauthorized("Missing capability token")
        owner = await self.users.get_stream_user_by_api_key(capability_token)
        if owner is None:
            raise Unauthorized("Unknown capability token")

        session = await self.sessions.open_session(owner.id, self.clock())
        logger.info(f"Session {session.id} opened for {owner.user.username}")
        self._spawn(session, immediate=False)
        return session

    async def restart_open_sessions(self) -> int:
        """Resume polling every open session, checking each one immediately."""
        open_sessions = await self.sessions.list_open_sessions()
        for session in open_sessions:
            self._spawn(session, immediate=True)
        if open_sessions:
            logger.info(f"Restarted polling for {len(open_sessions)} open session(s)")
        return len(open_sessions)

    async def poll_once(self, session_id: int) -> bool:
        """Run a single poll tick. Returns True once the session is closed."""
        session = await self.sessions.get_session(session_id)
        if session is None or not session.is_open:
            self._set_state(session_id, SessionState.CLOSED)
            return True

        status = await self.status_source.get_broadcast_status(session.user_id)

        if status is None:
            if await self.sessions.close_session(session.id, self.clock()):
                logger.info(f"Session {session.id} closed: channel {session.user_id} is offline")
            self._set_state(session.id, SessionState.CLOSED)
            return True

        if session.needs_backfill:
            await self.sessions.backfill(session.id, status.id, status.title)
            logger.info(f"Session {session.id} backfilled: {status.id} '{status.title}'")
        return False

    def state(self, session_id: int) -> SessionState | None:
        """State of a running poller; None once it has finished or was never started."""
        handle = self._pollers.get(session_id)
        return handle.state if handle else None

    def is_polling(self, session_id: int) -> bool:
        handle = self._pollers.get(session_id)
        return handle is not None and handle.task is not None and not handle.task.done()

    async def shutdown(self) -> None:
        """Abandon all poll loops at process exit. Session rows are left untouched."""
        tasks = [h.task for h in self._pollers.values() if h.task and not h.task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._pollers.clear()

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    def _set_state(self, session_id: int, state: SessionState) -> None:
        handle = self._pollers.get(session_id)
        if handle is not None:
            handle.state = state

    def _spawn(self, session: Session, *, immediate: bool) -> None:
        if self.is_polling(session.id):
            logger.debug(f"Session {session.id} already has a poller")
            return
        handle = PollerHandle(session_id=session.id, owner_id=session.user_id)
        self._pollers[session.id] = handle
        handle.task = asyncio.create_task(
            self._run(handle, immediate=immediate), name=f"session-poller-{session.id}"
        )
        handle.state = SessionState.LIVE

    async def _run(self, handle: PollerHandle, *, immediate: bool) -> None:
        try:
            if not immediate:
                await asyncio.sleep(self.interval)
            while True:
                try:
                    if await self.poll_once(handle.session_id):
                        return
                except SoulxbotError as e:
                    logger.warning(
                        f"Poll for session {handle.session_id} skipped: {type(e).__name__}: {e}"
                    )
                except Exception:
                    logger.exception(f"Unexpected error polling session {handle.session_id}")
                await asyncio.sleep(self.interval)
        finally:
            # Finished pollers are forgotten; the row records the closure
            if self._pollers.get(handle.session_id) is handle:
                del self._pollers[handle.session_id]
