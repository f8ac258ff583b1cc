"""Error taxonomy shared by the bot, the poller and the HTTP surface.

Every error carries the HTTP status it maps to so routers can render it
without a translation table of their own.
"""

from __future__ import annotations


class SoulxbotError(Exception):
    """Base class for all expected failures."""

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class Unauthorized(SoulxbotError):
    """Bad capability token or authorization header."""

    status_code = 401


class Conflict(SoulxbotError):
    """Duplicate open session or duplicate question text."""

    status_code = 409


class NotFound(SoulxbotError):
    """Unknown user, question or session."""

    status_code = 404


class CredentialExpired(SoulxbotError):
    """Refresh token absent or rejected; the owner must re-authorize."""

    status_code = 401


class AuthenticationFailed(SoulxbotError):
    """Ciphertext failed integrity verification."""

    status_code = 500


class TransientUpstreamError(SoulxbotError):
    """Platform API network failure or 5xx."""

    status_code = 502


class PersistenceError(SoulxbotError):
    """A storage operation failed; nothing is assumed committed."""

    status_code = 503


class UpstreamRejected(SoulxbotError):
    """Platform API refused a well-formed request (4xx other than auth)."""

    status_code = 502
