"""
Free trial API route.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from survey_platform.api.schemas import CamelModel
from survey_platform.config.settings import get_settings
from survey_platform.database import get_db
from survey_platform.middleware.auth import get_current_user
from survey_platform.models import Subscription, SubscriptionPlan, User
from survey_platform.models.base import utc_now
from survey_platform.models.subscription import STATUS_TRIALING

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/trial", tags=["trial"])

settings = get_settings()

TRIAL_PLAN_NAME = "Pro"
TRIAL_PLAN_CURRENCY = "USD"


class TrialSubscription(CamelModel):
    id: UUID
    status: str
    trial_end: datetime


class TrialStartResponse(CamelModel):
    success: bool
    subscription: TrialSubscription


@router.post("/start", response_model=TrialStartResponse)
async def start_trial(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Start the one-time Pro trial.

    Raises:
        HTTPException: 400 if the trial was already used or is running,
            404 if the Pro plan is missing
    """
    if current_user.has_used_trial:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You have already used your free trial"
        )

    existing = await db.execute(
        select(Subscription.id).where(
            Subscription.user_id == current_user.id,
            Subscription.status == STATUS_TRIALING,
        )
    )
    if existing.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You already have an active trial"
        )

    plan = (await db.execute(
        select(SubscriptionPlan).where(
            SubscriptionPlan.name == TRIAL_PLAN_NAME,
            SubscriptionPlan.currency == TRIAL_PLAN_CURRENCY,
            SubscriptionPlan.is_active.is_(True),
        )
    )).scalar_one_or_none()
    if plan is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pro plan not found"
        )

    trial_start = utc_now()
    subscription = Subscription(
        user_id=current_user.id,
        plan_id=plan.id,
        status=STATUS_TRIALING,
        payment_provider="trial",
        current_period_start=trial_start,
        current_period_end=trial_start + timedelta(days=settings.trial_days),
        cancel_at_period_end=False,
    )
    db.add(subscription)
    current_user.current_plan_id = plan.id
    current_user.has_used_trial = True
    await db.commit()

    logger.info(f"Trial started for user {current_user.id} until {subscription.current_period_end}")

    return TrialStartResponse(
        success=True,
        subscription=TrialSubscription(
            id=subscription.id,
            status=subscription.status,
            trial_end=subscription.current_period_end,
        ),
    )
