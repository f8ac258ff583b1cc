"""Data models shared by the bot, the poller and the API."""

from .platform import BroadcastStatus, PlatformUser, Prediction, PredictionOutcome, TokenPair
from .question import Question
from .session import FirstLeader, Session, SessionState
from .user import EncryptedCredentials, SessionConfig, StreamUser, User

__all__ = [
    "BroadcastStatus",
    "EncryptedCredentials",
    "FirstLeader",
    "PlatformUser",
    "Prediction",
    "PredictionOutcome",
    "Question",
    "Session",
    "SessionConfig",
    "SessionState",
    "StreamUser",
    "TokenPair",
    "User",
]
