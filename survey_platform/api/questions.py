"""
Question API routes.

Questions are edited one at a time by the survey's creator. Order values
stay contiguous from 0: new questions go last, deletes close the gap and
reorder takes the full list of question ids.
"""

import logging
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from survey_platform.api.schemas import CamelModel
from survey_platform.api.surveys import QuestionIn, QuestionOut, load_survey, survey_forbidden
from survey_platform.database import get_db
from survey_platform.middleware.auth import get_current_user
from survey_platform.models import Question, Survey, User
from survey_platform.models.base import utc_now
from survey_platform.services.visibility import can_edit_survey

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/surveys/{survey_id}/questions", tags=["questions"])


# Pydantic schemas
class QuestionUpdate(CamelModel):
    type: Optional[str] = Field(None, min_length=1, max_length=50)
    text: Optional[str] = Field(None, min_length=1)
    options: Optional[List[Any]] = None
    required: Optional[bool] = None


class QuestionReorder(CamelModel):
    question_ids: List[UUID] = Field(..., min_length=1)


class QuestionDetail(QuestionOut):
    survey_id: UUID


class QuestionResponse(CamelModel):
    success: bool = True
    question: QuestionDetail


class QuestionListResponse(CamelModel):
    questions: List[QuestionOut]


# Helpers
async def _editable_survey(db: AsyncSession, survey_id: UUID, user: User) -> Survey:
    survey = await load_survey(db, survey_id)
    if not can_edit_survey(survey, user.id):
        raise survey_forbidden()
    return survey


def _find_question(survey: Survey, question_id: UUID) -> Question:
    for question in survey.questions:
        if question.id == question_id:
            return question
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Question not found"
    )


def _blank_text() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Question type and text are required"
    )


# Routes
@router.post("", response_model=QuestionResponse, status_code=status.HTTP_201_CREATED)
async def add_question(
    survey_id: UUID,
    payload: QuestionIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Append a question to the end of the survey."""
    survey = await _editable_survey(db, survey_id, current_user)
    if not payload.text.strip():
        raise _blank_text()

    question = Question(
        type=payload.type,
        text=payload.text.strip(),
        options=payload.options,
        required=payload.required,
        order=max((q.order for q in survey.questions), default=-1) + 1,
    )
    survey.questions.append(question)
    survey.updated_at = utc_now()
    await db.commit()
    await db.refresh(question)

    return QuestionResponse(question=QuestionDetail.model_validate(question))


@router.patch("/reorder", response_model=QuestionListResponse)
async def reorder_questions(
    survey_id: UUID,
    payload: QuestionReorder,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Set the question order.

    Raises:
        HTTPException: 400 unless question_ids lists every question of the
            survey exactly once
    """
    survey = await _editable_survey(db, survey_id, current_user)

    by_id = {q.id: q for q in survey.questions}
    if len(payload.question_ids) != len(set(payload.question_ids)) or set(payload.question_ids) != set(by_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="questionIds must list every question of this survey once"
        )

    for index, question_id in enumerate(payload.question_ids):
        by_id[question_id].order = index
    survey.updated_at = utc_now()
    await db.commit()

    ordered = [by_id[question_id] for question_id in payload.question_ids]
    return QuestionListResponse(questions=[QuestionOut.model_validate(q) for q in ordered])


@router.patch("/{question_id}", response_model=QuestionResponse)
async def update_question(
    survey_id: UUID,
    question_id: UUID,
    payload: QuestionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    survey = await _editable_survey(db, survey_id, current_user)
    question = _find_question(survey, question_id)

    updates = payload.model_dump(exclude_unset=True)
    if "text" in updates:
        if not updates["text"] or not updates["text"].strip():
            raise _blank_text()
        question.text = updates["text"].strip()
    if updates.get("type"):
        question.type = updates["type"]
    if "options" in updates:
        question.options = updates["options"]
    if updates.get("required") is not None:
        question.required = updates["required"]

    survey.updated_at = utc_now()
    await db.commit()
    await db.refresh(question)

    return QuestionResponse(question=QuestionDetail.model_validate(question))


@router.delete("/{question_id}")
async def delete_question(
    survey_id: UUID,
    question_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a question and renumber the ones after it."""
    survey = await _editable_survey(db, survey_id, current_user)
    question = _find_question(survey, question_id)

    survey.questions.remove(question)
    for index, remaining in enumerate(sorted(survey.questions, key=lambda q: q.order)):
        remaining.order = index
    survey.updated_at = utc_now()
    await db.commit()

    logger.info(f"Question {question_id} deleted from survey {survey_id} by user {current_user.id}")
    return {"success": True, "message": "Question deleted successfully"}
