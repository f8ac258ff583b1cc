"""Outbound chat abstraction."""

from __future__ import annotations

from typing import Protocol


class ChatSender(Protocol):
    """Posts a message to a broadcaster's chat.

    Implementations log delivery failures instead of raising.
    """

    async def say(self, channel_id: str, message: str) -> None: ...
