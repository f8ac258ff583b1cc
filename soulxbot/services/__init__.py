"""Domain services: Twitch API access, session polling and chat features."""

from .chat import ChatSender
from .first_race import FirstRaceResolver
from .questions import QuestionService
from .registration import RegistrationService
from .session_poller import SessionPoller
from .twitch_api import TwitchAPIClient

__all__ = [
    "ChatSender",
    "FirstRaceResolver",
    "QuestionService",
    "RegistrationService",
    "SessionPoller",
    "TwitchAPIClient",
]
