"""Data models for broadcast sessions."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime


class SessionState(enum.Enum):
    OPENING = "opening"
    LIVE = "live"
    CLOSED = "closed"


@dataclass
class Session:
    """One broadcast, from go-live to go-offline."""

    id: int
    user_id: str
    started_at: datetime
    ended_at: datetime | None = None
    twitch_id: str | None = None
    title: str | None = None
    first_user_id: str | None = None
    qotd_id: int | None = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    @property
    def needs_backfill(self) -> bool:
        return self.twitch_id is None or self.title is None


@dataclass
class FirstLeader:
    user_id: str
    name: str
    count: int
