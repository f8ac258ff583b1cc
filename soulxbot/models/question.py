"""Data model for question-of-the-day entries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

SKIP_DISABLE_THRESHOLD = 2


@dataclass
class Question:
    id: int
    text: str
    disabled: bool = False
    skip_count: int = 0
    created_at: datetime | None = None
