"""Dependency injection utilities for FastAPI"""

from __future__ import annotations

import base64
import binascii
import hmac
import logging
from dataclasses import dataclass

from fastapi import Header, HTTPException

from soulxbot.core.config import Settings
from soulxbot.core.database import DatabaseManager
from soulxbot.core.errors import Unauthorized
from soulxbot.services.questions import QuestionService
from soulxbot.services.registration import RegistrationService
from soulxbot.services.session_poller import SessionPoller

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Long-lived service instances shared by the bot and the API."""

    settings: Settings
    poller: SessionPoller
    registration: RegistrationService
    questions: QuestionService
    database: DatabaseManager | None = None


_services: Services | None = None


def init_services(services: Services) -> None:
    global _services
    _services = services


def get_services() -> Services:
    if _services is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return _services


# ============================================
# Service Dependencies
# ============================================


def get_session_poller() -> SessionPoller:
    return get_services().poller


def get_registration_service() -> RegistrationService:
    return get_services().registration


def get_question_service() -> QuestionService:
    return get_services().questions


# ============================================
# Authentication Dependencies
# ============================================


def require_operator(authorization: str | None = Header(None)) -> str:
    """Check HTTP Basic credentials against the configured operator account.

    Returns the operator user name.
    """
    scheme, _, encoded = (authorization or "").partition(" ")
    if scheme != "Basic" or not encoded or " " in encoded:
        raise HTTPException(status_code=400, detail="Invalid Authorization Header")

    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise Unauthorized("Authentication Failed") from None

    expected = get_services().settings.basic_auth
    if not hmac.compare_digest(decoded.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Rejected operator request with wrong credentials")
        raise Unauthorized("Authentication Failed")
    return decoded.partition(":")[0]
