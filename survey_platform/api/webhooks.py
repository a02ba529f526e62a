"""
Stripe webhook endpoint.
"""

import json
import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from survey_platform.config.settings import get_settings
from survey_platform.database import get_db
from survey_platform.services.billing import handle_stripe_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

settings = get_settings()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="stripe-signature"),
    db: AsyncSession = Depends(get_db),
):
    """
    Verify and apply a Stripe event.

    Raises:
        HTTPException: 400 for a missing or invalid signature, 503 when no
            webhook secret is configured, 500 when the event cannot be applied
    """
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing signature"
        )
    if not settings.stripe_webhook_secret:
        logger.error("Stripe webhook received but SURVEY_STRIPE_WEBHOOK_SECRET is not set")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhooks are not configured"
        )

    payload = await request.body()
    try:
        stripe.Webhook.construct_event(payload, stripe_signature, settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature"
        )

    try:
        await handle_stripe_event(db, json.loads(payload))
    except (ValueError, KeyError, stripe.StripeError):
        logger.exception("Webhook handler error")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook handler failed"
        )
    await db.commit()

    return {"received": True}
