"""Broadcaster registration routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from soulxbot.api.dependencies import get_registration_service, require_operator
from soulxbot.models.user import SessionConfig
from soulxbot.services.registration import RegistrationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["registration"])


class RegistrationResponse(BaseModel):
    user_id: str
    api_key: str


def _response(config: SessionConfig) -> RegistrationResponse:
    return RegistrationResponse(user_id=config.user_id, api_key=config.api_key)


@router.post("/register", response_model=RegistrationResponse)
async def register_user(
    username: str = Query(..., min_length=1),
    operator: str = Depends(require_operator),
    registration: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    """Issue a capability token for a user who has chatted or exists on Twitch."""
    logger.info(f"Operator {operator} registering {username}")
    return _response(await registration.register(username))


@router.get("/oauth/authorize")
async def oauth_authorize(
    registration: RegistrationService = Depends(get_registration_service),
) -> RedirectResponse:
    return RedirectResponse(url=registration.authorize_url())


@router.get("/oauth/callback", response_model=RegistrationResponse)
async def oauth_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    registration: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    """Handle Twitch OAuth callback"""
    if error:
        logger.warning(f"OAuth error from Twitch: {error}")
        raise HTTPException(status_code=400, detail=error)
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")
    return _response(await registration.complete_oauth(code, state))
