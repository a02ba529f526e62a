"""
Public survey API routes (no authentication).

Drafts are never exposed; only published surveys accept responses.
"""

import logging
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_platform.api.schemas import CamelModel
from survey_platform.api.surveys import QuestionOut
from survey_platform.database import get_db
from survey_platform.models import Response, Survey
from survey_platform.models.survey import STATUS_DRAFT, STATUS_PUBLISHED

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public/surveys", tags=["public"])


class PublicSurvey(CamelModel):
    id: UUID
    unique_id: str
    title: str
    description: Optional[str]
    status: str
    questions: List[QuestionOut]


class PublicSurveyResponse(CamelModel):
    survey: PublicSurvey


class Answer(CamelModel):
    question_id: UUID
    answer: Any = None


class ResponseSubmission(CamelModel):
    answers: List[Answer]


class SubmissionResult(CamelModel):
    success: bool
    response_id: UUID
    message: str


async def _get_by_unique_id(db: AsyncSession, unique_id: str) -> Survey:
    stmt = (
        select(Survey)
        .options(selectinload(Survey.questions))
        .where(Survey.unique_id == unique_id)
    )
    survey = (await db.execute(stmt)).scalar_one_or_none()
    if survey is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Survey not found"
        )
    return survey


def client_ip(request: Request) -> Optional[str]:
    """Client address, honoring X-Forwarded-For and X-Real-IP from the proxy."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.headers.get("x-real-ip"):
        return request.headers["x-real-ip"]
    return request.client.host if request.client else None


@router.get("/{unique_id}", response_model=PublicSurveyResponse)
async def get_public_survey(unique_id: str, db: AsyncSession = Depends(get_db)):
    """
    Published or archived survey with ordered questions.

    Raises:
        HTTPException: 404 if unknown or still a draft
    """
    survey = await _get_by_unique_id(db, unique_id)
    if survey.status == STATUS_DRAFT:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Survey not available"
        )

    return PublicSurveyResponse(survey=PublicSurvey(
        id=survey.id,
        unique_id=survey.unique_id,
        title=survey.title,
        description=survey.description,
        status=survey.status,
        questions=[QuestionOut.model_validate(q) for q in sorted(survey.questions, key=lambda q: q.order)],
    ))


@router.post("/{unique_id}/responses", response_model=SubmissionResult)
async def submit_response(
    unique_id: str,
    payload: ResponseSubmission,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Submit answers to a published survey.

    Raises:
        HTTPException: 404 unknown survey, 403 not published, 400 missing required answers
    """
    survey = await _get_by_unique_id(db, unique_id)
    if survey.status != STATUS_PUBLISHED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Survey is not available for responses"
        )

    answered = {a.question_id for a in payload.answers if a.answer not in (None, "", [])}
    missing = [q.text for q in survey.questions if q.required and q.id not in answered]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Required questions not answered", "missingQuestions": missing}
        )

    response = Response(
        survey_id=survey.id,
        answers=[a.model_dump(by_alias=True, mode="json") for a in payload.answers],
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    db.add(response)
    await db.commit()

    logger.info(f"Response {response.id} submitted to survey {survey.id}")
    return SubmissionResult(success=True, response_id=response.id, message="Response submitted successfully")
