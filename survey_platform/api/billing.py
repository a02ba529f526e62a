"""
Billing API routes: Stripe Checkout, subscription cancellation and
downgrade validation.

The subscription bought through Checkout reaches us through api/webhooks.py.
"""

import logging
from datetime import datetime
from typing import List
from uuid import UUID

import stripe
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from survey_platform.api.schemas import CamelModel
from survey_platform.database import get_db
from survey_platform.exceptions import PlanNotFoundError, ProviderNotSupportedError
from survey_platform.middleware.auth import get_current_user
from survey_platform.models import Subscription, SubscriptionPlan, User
from survey_platform.models.subscription import STATUS_CANCELLED
from survey_platform.services import billing as billing_service
from survey_platform.services import limits

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"])


class CheckoutRequest(CamelModel):
    plan_id: UUID


class CheckoutResponse(CamelModel):
    url: str


class CancelRequest(CamelModel):
    subscription_id: UUID


class CancelResponse(CamelModel):
    success: bool
    message: str
    cancel_at_period_end: bool
    current_period_end: datetime


class DowngradeRequest(CamelModel):
    plan_id: UUID


class Violation(CamelModel):
    type: str
    current: int
    limit: int
    excess: int


class DowngradeResponse(CamelModel):
    allowed: bool
    violations: List[Violation]


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    payload: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a Stripe Checkout session for a subscription plan.

    Raises:
        HTTPException: 400 unknown or inactive plan, 400 plan without a Stripe
            price, 502 Stripe error
    """
    plan = await db.get(SubscriptionPlan, payload.plan_id)
    if plan is None or not plan.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid plan"
        )

    try:
        url = await billing_service.create_checkout_session(db, current_user, plan)
    except ProviderNotSupportedError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout failed for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to create checkout session"
        )

    return CheckoutResponse(url=url)


@router.post("/cancel", response_model=CancelResponse)
async def cancel_subscription(
    payload: CancelRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Cancel one of the user's subscriptions at the end of the billing period.

    Raises:
        HTTPException: 404 unknown subscription, 403 not the owner,
            400 already cancelled, 501 provider without cancellation support,
            502 Stripe error
    """
    subscription = await db.get(Subscription, payload.subscription_id)
    if subscription is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found"
        )
    if subscription.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden"
        )
    if subscription.status == STATUS_CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Subscription already cancelled"
        )

    try:
        await billing_service.cancel_subscription(subscription)
    except ProviderNotSupportedError as e:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail=str(e)
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe cancellation failed for subscription {subscription.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to cancel subscription"
        )

    await db.commit()

    return CancelResponse(
        success=True,
        message="Subscription will be cancelled at the end of the billing period",
        cancel_at_period_end=True,
        current_period_end=subscription.current_period_end,
    )


@router.post("/validate-downgrade", response_model=DowngradeResponse)
async def validate_downgrade(
    payload: DowngradeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Usage that would exceed the limits of the target plan."""
    try:
        check = await limits.validate_downgrade(db, current_user.id, payload.plan_id)
    except PlanNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Plan not found"
        )

    return DowngradeResponse(
        allowed=check.allowed,
        violations=[
            Violation(type=v.type, current=v.current, limit=v.limit, excess=v.excess)
            for v in check.violations
        ],
    )
