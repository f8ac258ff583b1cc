"""Data models for users, stream configs and stored credentials."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """Platform user seen in chat or registered."""

    id: str
    username: str
    display_name: str | None = None

    @property
    def name(self) -> str:
        return self.display_name or self.username


@dataclass
class SessionConfig:
    """Per-broadcaster feature flags and capability token."""

    user_id: str
    api_key: str
    bot_disabled: bool = False
    first_enabled: bool = True
    first_epoch: datetime | None = None
    qotd_enabled: bool = True
    updated_at: datetime | None = None


@dataclass
class StreamUser:
    """A registered broadcaster: the user plus its config."""

    user: User
    config: SessionConfig

    @property
    def id(self) -> str:
        return self.user.id


@dataclass
class EncryptedCredentials:
    """OAuth token pair as stored (each token independently encrypted)."""

    user_id: str
    access_token: bytes | None = None
    refresh_token: bytes | None = None
