"""Data models for Twitch API payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    id_token: str | None = None
    scopes: list[str] = field(default_factory=list)


@dataclass
class BroadcastStatus:
    """A live stream as reported by Helix /streams."""

    id: str
    user_id: str
    user_login: str
    title: str
    started_at: datetime | None = None


@dataclass
class PlatformUser:
    id: str
    login: str
    display_name: str


@dataclass
class PredictionOutcome:
    id: str
    title: str


@dataclass
class Prediction:
    id: str
    broadcaster_id: str
    title: str
    status: str
    outcomes: list[PredictionOutcome] = field(default_factory=list)
