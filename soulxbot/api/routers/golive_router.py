"""Go-live trigger: opens a session and starts polling it."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from soulxbot.api.dependencies import get_session_poller
from soulxbot.services.session_poller import SessionPoller

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


class GoLiveResponse(BaseModel):
    session_id: int
    user_id: str
    started_at: datetime


@router.api_route("/golive", methods=["GET", "POST"], status_code=202, response_model=GoLiveResponse)
async def go_live(
    key: str = Query(default=""),
    poller: SessionPoller = Depends(get_session_poller),
) -> GoLiveResponse:
    """202 when a session was opened, 409 if one is already open, 401 for a bad key."""
    session = await poller.open_session(key)
    return GoLiveResponse(session_id=session.id, user_id=session.user_id, started_at=session.started_at)
