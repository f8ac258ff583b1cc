"""Question of the day management routes"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from soulxbot.api.dependencies import get_question_service, require_operator
from soulxbot.models.question import Question
from soulxbot.services.questions import QuestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/question", tags=["questions"])


class QuestionCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)


class QuestionResponse(BaseModel):
    id: int
    text: str
    disabled: bool
    skip_count: int


def _response(question: Question) -> QuestionResponse:
    return QuestionResponse(
        id=question.id,
        text=question.text,
        disabled=question.disabled,
        skip_count=question.skip_count,
    )


@router.post("", status_code=201, response_model=QuestionResponse)
async def create_question(
    body: QuestionCreate,
    operator: str = Depends(require_operator),
    questions: QuestionService = Depends(get_question_service),
) -> QuestionResponse:
    """Add a question; 409 if the same text already exists."""
    return _response(await questions.create_question(body.text))


@router.get("/{question_id}", response_model=QuestionResponse)
async def get_question(
    question_id: int,
    questions: QuestionService = Depends(get_question_service),
) -> QuestionResponse:
    return _response(await questions.get_question(question_id))
