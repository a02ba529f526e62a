"""
Current-user API routes: subscription status and password change.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from survey_platform.api.schemas import CamelModel
from survey_platform.config.settings import get_settings
from survey_platform.database import get_db
from survey_platform.middleware.auth import get_current_user
from survey_platform.models import Subscription, User
from survey_platform.models.subscription import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_PAST_DUE,
    STATUS_TRIALING,
)
from survey_platform.security import hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["user"])

settings = get_settings()

REPORTED_STATUSES = (STATUS_ACTIVE, STATUS_PAST_DUE, STATUS_CANCELLED, STATUS_TRIALING)


class SubscriptionStatusResponse(CamelModel):
    status: str


class PasswordChange(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


@router.get("/subscription-status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Status of the newest subscription, or "none"."""
    stmt = (
        select(Subscription.status)
        .where(
            Subscription.user_id == current_user.id,
            Subscription.status.in_(REPORTED_STATUSES),
        )
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    subscription_status = (await db.execute(stmt)).scalar_one_or_none()
    return SubscriptionStatusResponse(status=subscription_status or "none")


@router.patch("/password")
async def change_password(
    payload: PasswordChange,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Change the password of a credential account.

    Raises:
        HTTPException: 400 for a short or wrong password, 404 for accounts without password
    """
    if len(payload.new_password) < settings.min_password_length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"New password must be at least {settings.min_password_length} characters"
        )

    if not current_user.hashed_password:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found or password not set"
        )

    if not verify_password(payload.current_password, current_user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect"
        )

    current_user.hashed_password = hash_password(payload.new_password)
    await db.commit()

    logger.info(f"Password updated for user {current_user.id}")
    return {"success": True, "message": "Password updated successfully"}
