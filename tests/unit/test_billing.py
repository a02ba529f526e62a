"""
Unit tests for Stripe billing event handling.
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from survey_platform.exceptions import ProviderNotSupportedError
from survey_platform.models import Payment, Subscription
from survey_platform.models.subscription import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_PAST_DUE,
    STATUS_TRIALING,
)
from survey_platform.services import billing

pytestmark = pytest.mark.unit

PERIOD_START = 1767225600  # 2026-01-01T00:00:00Z
PERIOD_END = 1769904000  # 2026-02-01T00:00:00Z


def stripe_subscription(subscription_id="sub_123", **overrides):
    data = {
        "id": subscription_id,
        "customer": "cus_123",
        "status": "active",
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "cancel_at_period_end": False,
    }
    data.update(overrides)
    return data


async def make_stripe_subscription(db, user, plan, provider_id="sub_123", status=STATUS_ACTIVE):
    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        status=status,
        payment_provider=billing.STRIPE_PROVIDER,
        provider_subscription_id=provider_id,
        provider_customer_id="cus_123",
        current_period_start=billing.from_timestamp(PERIOD_START),
        current_period_end=billing.from_timestamp(PERIOD_END),
    )
    db.add(subscription)
    await db.flush()
    return subscription


class TestMapStripeStatus:

    @pytest.mark.parametrize(
        "stripe_status,expected",
        [
            ("active", STATUS_ACTIVE),
            ("canceled", STATUS_CANCELLED),
            ("past_due", STATUS_PAST_DUE),
            ("trialing", STATUS_TRIALING),
            ("incomplete", STATUS_ACTIVE),
            (None, STATUS_ACTIVE),
        ],
    )
    def test_mapping(self, stripe_status, expected):
        assert billing.map_stripe_status(stripe_status) == expected

    def test_from_timestamp_is_utc(self):
        value = billing.from_timestamp(PERIOD_START)

        assert value.isoformat() == "2026-01-01T00:00:00+00:00"
        assert billing.from_timestamp(None) is None


class TestCheckoutCompleted:

    @pytest.mark.asyncio
    async def test_creates_subscription(self, test_db, no_plan_user, plans):
        plan = plans[("Pro", "USD")]
        event = {
            "type": "checkout.session.completed",
            "data": {"object": {
                "subscription": "sub_new",
                "metadata": {"userId": str(no_plan_user.id), "planId": str(plan.id)},
            }},
        }

        with patch(
            "survey_platform.services.billing.stripe.Subscription.retrieve",
            return_value=stripe_subscription("sub_new"),
        ) as retrieve:
            handled = await billing.handle_stripe_event(test_db, event)

        assert handled is True
        retrieve.assert_called_once_with("sub_new")
        subscription = await billing.get_by_provider_id(test_db, "sub_new")
        assert subscription.user_id == no_plan_user.id
        assert subscription.status == STATUS_ACTIVE
        assert subscription.provider_customer_id == "cus_123"
        assert no_plan_user.current_plan_id == plan.id

    @pytest.mark.asyncio
    async def test_redelivery_is_idempotent(self, test_db, no_plan_user, plans):
        plan = plans[("Pro", "USD")]
        session = {
            "subscription": "sub_new",
            "metadata": {"userId": str(no_plan_user.id), "planId": str(plan.id)},
        }

        with patch(
            "survey_platform.services.billing.stripe.Subscription.retrieve",
            return_value=stripe_subscription("sub_new"),
        ):
            await billing.handle_checkout_completed(test_db, session)
            await billing.handle_checkout_completed(test_db, session)

        result = await test_db.execute(
            select(Subscription).where(Subscription.provider_subscription_id == "sub_new")
        )
        assert len(result.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_missing_metadata(self, test_db):
        with pytest.raises(ValueError, match="Missing metadata"):
            await billing.handle_checkout_completed(test_db, {"subscription": "sub_x", "metadata": {}})


class TestSubscriptionEvents:

    @pytest.mark.asyncio
    async def test_updated_syncs_status_and_period(self, test_db, free_user, plans):
        subscription = await make_stripe_subscription(test_db, free_user, plans[("Pro", "USD")])

        await billing.handle_subscription_updated(
            test_db,
            stripe_subscription(status="past_due", current_period_end=PERIOD_END + 86400, cancel_at_period_end=True),
        )

        assert subscription.status == STATUS_PAST_DUE
        assert subscription.cancel_at_period_end is True
        assert subscription.current_period_end == billing.from_timestamp(PERIOD_END + 86400)

    @pytest.mark.asyncio
    async def test_updated_unknown_subscription_ignored(self, test_db):
        await billing.handle_subscription_updated(test_db, stripe_subscription("sub_unknown"))

        assert await billing.get_by_provider_id(test_db, "sub_unknown") is None

    @pytest.mark.asyncio
    async def test_deleted_reverts_to_free(self, test_db, pro_user, plans):
        subscription = await make_stripe_subscription(test_db, pro_user, plans[("Pro", "USD")])

        await billing.handle_subscription_deleted(test_db, stripe_subscription())

        assert subscription.status == STATUS_CANCELLED
        assert pro_user.current_plan_id == plans[("Free", "USD")].id


class TestInvoiceEvents:

    @pytest.mark.asyncio
    async def test_payment_succeeded_records_once(self, test_db, free_user, plans):
        subscription = await make_stripe_subscription(
            test_db, free_user, plans[("Pro", "USD")], status=STATUS_PAST_DUE
        )
        invoice = {
            "subscription": "sub_123",
            "payment_intent": "pi_123",
            "amount_paid": 2900,
            "currency": "usd",
            "status_transitions": {"paid_at": PERIOD_START},
        }

        await billing.handle_payment_succeeded(test_db, invoice)
        await billing.handle_payment_succeeded(test_db, invoice)

        payments = (await test_db.execute(select(Payment))).scalars().all()
        assert len(payments) == 1
        assert payments[0].amount == 2900
        assert payments[0].currency == "USD"
        assert payments[0].status == "completed"
        assert subscription.status == STATUS_ACTIVE

    @pytest.mark.asyncio
    async def test_payment_without_subscription_ignored(self, test_db):
        await billing.handle_payment_succeeded(test_db, {"payment_intent": "pi_1"})

        assert (await test_db.execute(select(Payment))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_payment_failed_marks_past_due(self, test_db, free_user, plans):
        subscription = await make_stripe_subscription(test_db, free_user, plans[("Pro", "USD")])

        await billing.handle_payment_failed(test_db, {"subscription": "sub_123"})

        assert subscription.status == STATUS_PAST_DUE

    @pytest.mark.asyncio
    async def test_unhandled_event_type(self, test_db):
        handled = await billing.handle_stripe_event(test_db, {"type": "customer.created", "data": {"object": {}}})

        assert handled is False


class TestCancelSubscription:

    @pytest.mark.asyncio
    async def test_cancels_at_period_end(self, test_db, free_user, plans):
        subscription = await make_stripe_subscription(test_db, free_user, plans[("Pro", "USD")])

        with patch("survey_platform.services.billing.stripe.Subscription.modify") as modify:
            await billing.cancel_subscription(subscription)

        modify.assert_called_once_with("sub_123", cancel_at_period_end=True)
        assert subscription.cancel_at_period_end is True

    @pytest.mark.asyncio
    async def test_manual_subscription_not_supported(self, test_db, free_user):
        manual = (await test_db.execute(
            select(Subscription).where(Subscription.user_id == free_user.id)
        )).scalar_one()

        with pytest.raises(ProviderNotSupportedError):
            await billing.cancel_subscription(manual)

    @pytest.mark.asyncio
    async def test_stripe_call_runs_in_threadpool(self, test_db, free_user, plans):
        subscription = await make_stripe_subscription(test_db, free_user, plans[("Pro", "USD")])

        with patch(
            "survey_platform.services.billing.run_in_threadpool",
            new_callable=AsyncMock,
        ) as threadpool:
            await billing.cancel_subscription(subscription)

        threadpool.assert_awaited_once_with(
            billing.stripe.Subscription.modify,
            "sub_123",
            cancel_at_period_end=True,
        )
        assert subscription.cancel_at_period_end is True
