"""
Usage API routes.

Each endpoint reports {current, limit, percentage} for one limit type;
limit is "unlimited" when the plan does not cap the resource.
"""

from typing import Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from survey_platform.api.schemas import CamelModel
from survey_platform.database import get_db
from survey_platform.middleware.auth import get_current_user, load_organization_context
from survey_platform.models import User
from survey_platform.services import limits

router = APIRouter(prefix="/api/usage", tags=["usage"])


class UsageResponse(CamelModel):
    current: int
    limit: Union[int, str]
    percentage: float


def _usage(check: limits.LimitCheck) -> UsageResponse:
    return UsageResponse(
        current=check.current,
        limit=check.limit_display,
        percentage=check.percentage,
    )


@router.get("/surveys", response_model=UsageResponse)
async def survey_usage(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _usage(await limits.check_survey_limit(db, current_user.id))


@router.get("/organizations", response_model=UsageResponse)
async def organization_usage(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _usage(await limits.check_organization_limit(db, current_user.id))


@router.get("/members", response_model=UsageResponse)
async def member_usage(
    organization_id: Optional[UUID] = Query(None, alias="organizationId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Seat usage of an organization the caller belongs to.

    Raises:
        HTTPException: 400 without organizationId, 404/403 as for other organization routes
    """
    if organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="organizationId is required"
        )

    await load_organization_context(db, organization_id, current_user)
    return _usage(await limits.check_member_limit(db, organization_id))
