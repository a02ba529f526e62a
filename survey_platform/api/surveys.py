"""
Survey management API routes.

Surveys are created by a user, optionally inside one of their
organizations. Access follows services/visibility.py; creation and
duplication are gated by the survey limit.
"""

import logging
import secrets
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_platform.api.schemas import CamelModel, PageParams, Pagination
from survey_platform.database import get_db
from survey_platform.middleware.auth import get_current_user
from survey_platform.models import Question, Response, Survey, User
from survey_platform.models.base import utc_now
from survey_platform.models.subscription import RESOURCE_SURVEY
from survey_platform.models.survey import (
    STATUS_ARCHIVED,
    STATUS_DRAFT,
    STATUS_PUBLISHED,
    VISIBILITY_ORGANIZATION,
    VISIBILITY_PRIVATE,
)
from survey_platform.services import limits
from survey_platform.services import organizations as org_service
from survey_platform.services.visibility import (
    can_access_survey,
    can_delete_survey,
    can_edit_survey,
    can_view_analytics,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/surveys", tags=["surveys"])

VISIBILITY_PATTERN = f"^({VISIBILITY_PRIVATE}|{VISIBILITY_ORGANIZATION})$"


# Pydantic schemas
class QuestionIn(CamelModel):
    type: str = Field(..., min_length=1, max_length=50)
    text: str = Field(..., min_length=1)
    options: Optional[List[Any]] = None
    required: bool = False


class QuestionOut(CamelModel):
    id: UUID
    type: str
    text: str
    options: Optional[List[Any]]
    required: bool
    order: int


class SurveyCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    organization_id: Optional[UUID] = None
    visibility: str = Field(VISIBILITY_PRIVATE, pattern=VISIBILITY_PATTERN)
    questions: List[QuestionIn] = []


class SurveyUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    visibility: Optional[str] = Field(None, pattern=VISIBILITY_PATTERN)
    questions: Optional[List[QuestionIn]] = None


class SurveySummary(CamelModel):
    id: UUID
    unique_id: str
    title: str
    description: Optional[str]
    status: str
    visibility: str
    organization_id: Optional[UUID]
    created_at: datetime
    updated_at: datetime
    published_at: Optional[datetime]
    response_count: int = 0
    question_count: int = 0


class SurveyDetail(SurveySummary):
    questions: List[QuestionOut] = []


class SurveyListResponse(CamelModel):
    surveys: List[SurveySummary]


class SurveyResponse(CamelModel):
    success: bool = True
    survey: SurveyDetail


class SubmittedResponse(CamelModel):
    id: UUID
    answers: List[Any]
    submitted_at: datetime
    ip_address: Optional[str]
    user_agent: Optional[str]


class ResponseListResponse(CamelModel):
    responses: List[SubmittedResponse]
    pagination: Pagination


# Helpers
def generate_unique_id() -> str:
    """Public share identifier."""
    return secrets.token_urlsafe(9)


async def load_survey(db: AsyncSession, survey_id: UUID) -> Survey:
    stmt = (
        select(Survey)
        .options(selectinload(Survey.questions))
        .where(Survey.id == survey_id)
    )
    survey = (await db.execute(stmt)).scalar_one_or_none()
    if survey is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Survey not found"
        )
    return survey


def survey_forbidden() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You do not have access to this survey"
    )


async def _response_count(db: AsyncSession, survey_id: UUID) -> int:
    count = await db.scalar(select(func.count(Response.id)).where(Response.survey_id == survey_id))
    return count or 0


async def _detail(db: AsyncSession, survey: Survey) -> SurveyDetail:
    questions = sorted(survey.questions, key=lambda q: q.order)
    return SurveyDetail(
        id=survey.id,
        unique_id=survey.unique_id,
        title=survey.title,
        description=survey.description,
        status=survey.status,
        visibility=survey.visibility,
        organization_id=survey.organization_id,
        created_at=survey.created_at,
        updated_at=survey.updated_at,
        published_at=survey.published_at,
        response_count=await _response_count(db, survey.id),
        question_count=len(questions),
        questions=[QuestionOut.model_validate(q) for q in questions],
    )


def _build_questions(questions: List[QuestionIn]) -> List[Question]:
    return [
        Question(
            type=q.type,
            text=q.text,
            options=q.options,
            required=q.required,
            order=index,
        )
        for index, q in enumerate(questions)
    ]


def _ensure_survey_limit(check: limits.LimitCheck) -> None:
    if not check.allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": check.message or "Survey limit reached",
                "reason": check.reason,
                "current": check.current,
                "limit": check.limit_display,
            }
        )


# Routes
@router.get("", response_model=SurveyListResponse)
async def list_surveys(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The current user's surveys, most recently updated first."""
    response_count = (
        select(func.count(Response.id)).where(Response.survey_id == Survey.id).scalar_subquery()
    )
    question_count = (
        select(func.count(Question.id)).where(Question.survey_id == Survey.id).scalar_subquery()
    )
    stmt = (
        select(Survey, response_count, question_count)
        .where(Survey.user_id == current_user.id)
        .order_by(Survey.updated_at.desc())
    )
    rows = (await db.execute(stmt)).all()

    surveys = []
    for survey, responses, questions in rows:
        summary = SurveySummary.model_validate(survey)
        summary.response_count = responses or 0
        summary.question_count = questions or 0
        surveys.append(summary)
    return SurveyListResponse(surveys=surveys)


@router.post("", response_model=SurveyResponse, status_code=status.HTTP_201_CREATED)
async def create_survey(
    payload: SurveyCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a draft survey with its questions.

    Raises:
        HTTPException: 403 when the survey limit is reached or the user is
            not a member of the target organization, 400 for organization
            visibility without an organization
    """
    if payload.organization_id is not None:
        if not await org_service.is_member(db, payload.organization_id, current_user.id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not a member of this organization"
            )
    elif payload.visibility == VISIBILITY_ORGANIZATION:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Organization visibility requires an organization"
        )

    _ensure_survey_limit(await limits.check_survey_limit(db, current_user.id))

    survey = Survey(
        unique_id=generate_unique_id(),
        user_id=current_user.id,
        organization_id=payload.organization_id,
        title=payload.title,
        description=payload.description,
        status=STATUS_DRAFT,
        visibility=payload.visibility,
    )
    survey.questions = _build_questions(payload.questions)
    db.add(survey)
    await limits.increment_usage(db, current_user.id, RESOURCE_SURVEY, payload.organization_id)
    await db.commit()

    logger.info(f"Survey {survey.id} created by user {current_user.id}")
    survey = await load_survey(db, survey.id)
    return SurveyResponse(survey=await _detail(db, survey))


@router.get("/{survey_id}", response_model=SurveyResponse)
async def get_survey(
    survey_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    survey = await load_survey(db, survey_id)
    memberships = await org_service.user_organization_ids(db, current_user.id)
    if not can_access_survey(survey, current_user.id, memberships):
        raise survey_forbidden()
    return SurveyResponse(survey=await _detail(db, survey))


@router.patch("/{survey_id}", response_model=SurveyResponse)
async def update_survey(
    survey_id: UUID,
    payload: SurveyUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update survey fields; a questions list replaces all questions.
    """
    survey = await load_survey(db, survey_id)
    if not can_edit_survey(survey, current_user.id):
        raise survey_forbidden()

    updates = payload.model_dump(exclude_unset=True, exclude={"questions"})
    if updates.get("visibility") == VISIBILITY_ORGANIZATION and survey.organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Organization visibility requires an organization"
        )
    for field, value in updates.items():
        if value is not None or field == "description":
            setattr(survey, field, value)

    if payload.questions is not None:
        survey.questions.clear()
        await db.flush()
        survey.questions.extend(_build_questions(payload.questions))

    survey.updated_at = utc_now()
    await db.commit()

    survey = await load_survey(db, survey.id)
    return SurveyResponse(survey=await _detail(db, survey))


@router.delete("/{survey_id}")
async def delete_survey(
    survey_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a survey and release its usage slot."""
    survey = await load_survey(db, survey_id)
    if not can_delete_survey(survey, current_user.id):
        raise survey_forbidden()

    await db.delete(survey)
    await limits.decrement_usage(db, survey.user_id, RESOURCE_SURVEY, survey.organization_id)
    await db.commit()

    logger.info(f"Survey {survey_id} deleted by user {current_user.id}")
    return {"success": True, "message": "Survey deleted successfully"}


@router.post("/{survey_id}/publish", response_model=SurveyResponse)
async def publish_survey(
    survey_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Publish a survey.

    Raises:
        HTTPException: 400 with validationErrors when the survey has no
            title or no questions
    """
    survey = await load_survey(db, survey_id)
    if not can_edit_survey(survey, current_user.id):
        raise survey_forbidden()

    validation_errors = []
    if not survey.title or not survey.title.strip():
        validation_errors.append("Survey must have a title")
    if not survey.questions:
        validation_errors.append("Survey must have at least one question")
    if validation_errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Survey validation failed", "validationErrors": validation_errors}
        )

    survey.status = STATUS_PUBLISHED
    survey.published_at = utc_now()
    await db.commit()

    return SurveyResponse(survey=await _detail(db, survey))


@router.delete("/{survey_id}/publish", response_model=SurveyResponse)
async def unpublish_survey(
    survey_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Move a survey back to draft; published_at is kept as history."""
    survey = await load_survey(db, survey_id)
    if not can_edit_survey(survey, current_user.id):
        raise survey_forbidden()

    survey.status = STATUS_DRAFT
    await db.commit()
    return SurveyResponse(survey=await _detail(db, survey))


@router.post("/{survey_id}/archive", response_model=SurveyResponse)
async def archive_survey(
    survey_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    survey = await load_survey(db, survey_id)
    if not can_edit_survey(survey, current_user.id):
        raise survey_forbidden()

    survey.status = STATUS_ARCHIVED
    survey.archived_at = utc_now()
    await db.commit()
    return SurveyResponse(survey=await _detail(db, survey))


@router.post("/{survey_id}/duplicate", response_model=SurveyResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_survey(
    survey_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Copy a survey and its questions into a new personal draft.

    Raises:
        HTTPException: 403 when the survey limit is reached
    """
    source = await load_survey(db, survey_id)
    if not can_edit_survey(source, current_user.id):
        raise survey_forbidden()

    _ensure_survey_limit(await limits.check_survey_limit(db, current_user.id))

    duplicate = Survey(
        unique_id=generate_unique_id(),
        user_id=current_user.id,
        title=f"{source.title} - Copy",
        description=source.description,
        status=STATUS_DRAFT,
        visibility=VISIBILITY_PRIVATE,
    )
    duplicate.questions = [
        Question(type=q.type, text=q.text, options=q.options, required=q.required, order=index)
        for index, q in enumerate(sorted(source.questions, key=lambda q: q.order))
    ]
    db.add(duplicate)
    await limits.increment_usage(db, current_user.id, RESOURCE_SURVEY)
    await db.commit()

    duplicate = await load_survey(db, duplicate.id)
    return SurveyResponse(survey=await _detail(db, duplicate))


@router.get("/{survey_id}/responses", response_model=ResponseListResponse)
async def list_responses(
    survey_id: UUID,
    page: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Submitted responses, newest first.

    Open to whoever may view the survey's analytics: the creator, and
    organization members when the survey is shared or their role has
    view_all_analytics.
    """
    survey = await load_survey(db, survey_id)
    memberships = await org_service.user_organization_ids(db, current_user.id)
    permissions: List[str] = []
    if survey.organization_id is not None and survey.organization_id in memberships:
        role = await org_service.get_user_role(db, survey.organization_id, current_user.id)
        permissions = org_service.permission_names(role)
    if not can_view_analytics(survey, current_user.id, memberships, permissions):
        raise survey_forbidden()

    total = await _response_count(db, survey.id)
    stmt = (
        select(Response)
        .where(Response.survey_id == survey.id)
        .order_by(Response.submitted_at.desc())
        .offset(page.offset)
        .limit(page.limit)
    )
    responses = (await db.execute(stmt)).scalars().all()

    return ResponseListResponse(
        responses=[SubmittedResponse.model_validate(r) for r in responses],
        pagination=page.pagination(total),
    )
