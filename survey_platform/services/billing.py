"""
Stripe billing integration.

Webhook events arrive as verified JSON payloads (see api/webhooks.py) and
are applied to local subscription and payment records. Handlers are
idempotent: Stripe retries deliveries.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID

import stripe
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from survey_platform.config.settings import get_settings
from survey_platform.exceptions import ProviderNotSupportedError
from survey_platform.models import Payment, Subscription, SubscriptionPlan, User
from survey_platform.models.subscription import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_PAST_DUE,
    STATUS_TRIALING,
)

logger = logging.getLogger(__name__)

settings = get_settings()
stripe.api_key = settings.stripe_secret_key

STRIPE_PROVIDER = "stripe"
FREE_PLAN_NAME = "Free"
FREE_PLAN_CURRENCY = "USD"


def map_stripe_status(status: Optional[str]) -> str:
    """Map a Stripe subscription status onto ours; anything unknown counts as active."""
    if status == "canceled":
        return STATUS_CANCELLED
    if status == "past_due":
        return STATUS_PAST_DUE
    if status == "trialing":
        return STATUS_TRIALING
    return STATUS_ACTIVE


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


async def get_by_provider_id(db: AsyncSession, provider_subscription_id: str) -> Optional[Subscription]:
    stmt = select(Subscription).where(Subscription.provider_subscription_id == provider_subscription_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def handle_checkout_completed(db: AsyncSession, session: dict) -> None:
    """Create the subscription bought through Checkout and make its plan current."""
    metadata = session.get("metadata") or {}
    user_id = metadata.get("userId")
    plan_id = metadata.get("planId")
    if not user_id or not plan_id:
        raise ValueError("Missing metadata in checkout session")

    stripe_subscription = await run_in_threadpool(stripe.Subscription.retrieve, session["subscription"])

    existing = await get_by_provider_id(db, stripe_subscription["id"])
    if existing is not None:
        logger.info(f"Subscription {stripe_subscription['id']} already exists, skipping creation")
        return

    db.add(Subscription(
        user_id=UUID(user_id),
        plan_id=UUID(plan_id),
        status=STATUS_ACTIVE,
        payment_provider=STRIPE_PROVIDER,
        provider_subscription_id=stripe_subscription["id"],
        provider_customer_id=stripe_subscription["customer"],
        current_period_start=from_timestamp(stripe_subscription["current_period_start"]),
        current_period_end=from_timestamp(stripe_subscription["current_period_end"]),
    ))

    user = await db.get(User, UUID(user_id))
    if user is not None:
        user.current_plan_id = UUID(plan_id)

    await db.flush()
    logger.info(f"Subscription created for user {user_id}")


async def handle_subscription_updated(db: AsyncSession, stripe_subscription: dict) -> None:
    subscription = await get_by_provider_id(db, stripe_subscription["id"])
    if subscription is None:
        logger.warning(f"Subscription update for unknown subscription {stripe_subscription['id']}")
        return

    subscription.status = map_stripe_status(stripe_subscription.get("status"))
    if stripe_subscription.get("current_period_start"):
        subscription.current_period_start = from_timestamp(stripe_subscription["current_period_start"])
    if stripe_subscription.get("current_period_end"):
        subscription.current_period_end = from_timestamp(stripe_subscription["current_period_end"])
    subscription.cancel_at_period_end = bool(stripe_subscription.get("cancel_at_period_end"))

    await db.flush()
    logger.info(f"Subscription updated: {stripe_subscription['id']}")


async def handle_subscription_deleted(db: AsyncSession, stripe_subscription: dict) -> None:
    """Cancel locally and move the user back to the Free plan."""
    subscription = await get_by_provider_id(db, stripe_subscription["id"])
    if subscription is None:
        return

    subscription.status = STATUS_CANCELLED

    stmt = select(SubscriptionPlan).where(
        SubscriptionPlan.name == FREE_PLAN_NAME,
        SubscriptionPlan.currency == FREE_PLAN_CURRENCY,
    )
    free_plan = (await db.execute(stmt)).scalar_one_or_none()
    if free_plan is not None:
        user = await db.get(User, subscription.user_id)
        if user is not None:
            user.current_plan_id = free_plan.id

    await db.flush()
    logger.info(f"Subscription cancelled: {stripe_subscription['id']}")


async def handle_payment_succeeded(db: AsyncSession, invoice: dict) -> None:
    """Record the payment once and reactivate a past-due subscription."""
    provider_subscription_id = invoice.get("subscription")
    if not provider_subscription_id:
        return

    subscription = await get_by_provider_id(db, provider_subscription_id)
    if subscription is None:
        return

    payment_intent = invoice.get("payment_intent")
    if payment_intent:
        stmt = select(Payment).where(Payment.provider_payment_id == payment_intent)
        if (await db.execute(stmt)).scalar_one_or_none() is not None:
            logger.info(f"Payment {payment_intent} already exists, skipping creation")
            return

    paid_at = (invoice.get("status_transitions") or {}).get("paid_at")
    db.add(Payment(
        subscription_id=subscription.id,
        user_id=subscription.user_id,
        amount=invoice.get("amount_paid") or 0,
        currency=(invoice.get("currency") or "usd").upper(),
        provider=STRIPE_PROVIDER,
        provider_payment_id=payment_intent,
        status="completed",
        paid_at=from_timestamp(paid_at) or datetime.now(timezone.utc),
    ))

    if subscription.status == STATUS_PAST_DUE:
        subscription.status = STATUS_ACTIVE

    await db.flush()
    logger.info(f"Payment succeeded for subscription {subscription.id}")


async def handle_payment_failed(db: AsyncSession, invoice: dict) -> None:
    provider_subscription_id = invoice.get("subscription")
    if not provider_subscription_id:
        return

    subscription = await get_by_provider_id(db, provider_subscription_id)
    if subscription is None:
        return

    subscription.status = STATUS_PAST_DUE
    await db.flush()
    logger.info(f"Payment failed for subscription {provider_subscription_id}")


EVENT_HANDLERS: dict[str, Callable[[AsyncSession, dict], Any]] = {
    "checkout.session.completed": handle_checkout_completed,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_payment_succeeded,
    "invoice.payment_failed": handle_payment_failed,
}


async def handle_stripe_event(db: AsyncSession, event: dict) -> bool:
    """
    Apply a verified Stripe event.

    Returns:
        True if the event type is handled, False if it was ignored
    """
    event_type = event.get("type")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled Stripe event type: {event_type}")
        return False

    logger.info(f"Stripe webhook event: {event_type}")
    await handler(db, event["data"]["object"])
    return True


async def cancel_subscription(subscription: Subscription) -> None:
    """
    Cancel a subscription at the end of its current period.

    Raises:
        ProviderNotSupportedError: If the subscription is not billed through Stripe
    """
    if subscription.payment_provider != STRIPE_PROVIDER or not subscription.provider_subscription_id:
        raise ProviderNotSupportedError(
            f"Cancellation not supported for provider {subscription.payment_provider}"
        )

    await run_in_threadpool(
        stripe.Subscription.modify,
        subscription.provider_subscription_id,
        cancel_at_period_end=True,
    )
    subscription.cancel_at_period_end = True
    logger.info(f"Subscription {subscription.id} set to cancel at period end")


async def get_stripe_customer_id(db: AsyncSession, user_id: UUID) -> Optional[str]:
    """Customer id from the user's most recent Stripe subscription, if any."""
    stmt = (
        select(Subscription.provider_customer_id)
        .where(
            Subscription.user_id == user_id,
            Subscription.payment_provider == STRIPE_PROVIDER,
            Subscription.provider_customer_id.is_not(None),
        )
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def create_checkout_session(db: AsyncSession, user: User, plan: SubscriptionPlan) -> str:
    """
    Start a Stripe Checkout subscription for plan.

    The session metadata carries userId/planId for handle_checkout_completed.

    Returns:
        Checkout URL to redirect the user to

    Raises:
        ProviderNotSupportedError: If the plan has no Stripe price
    """
    if not plan.stripe_price_id:
        raise ProviderNotSupportedError("Payment provider not supported for this plan")

    params: dict[str, Any] = {
        "mode": "subscription",
        "line_items": [{"price": plan.stripe_price_id, "quantity": 1}],
        "success_url": f"{settings.app_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{settings.app_url}/billing/cancelled",
        "client_reference_id": str(user.id),
        "metadata": {"userId": str(user.id), "planId": str(plan.id)},
    }
    customer_id = await get_stripe_customer_id(db, user.id)
    if customer_id:
        params["customer"] = customer_id
    else:
        params["customer_email"] = user.email

    checkout_session = await run_in_threadpool(stripe.checkout.Session.create, **params)
    logger.info(f"Checkout session {checkout_session['id']} created for user {user.id}, plan {plan.id}")
    return checkout_session["url"]
