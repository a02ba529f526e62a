"""
Integration tests for billing endpoints.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
import stripe
from httpx import AsyncClient
from sqlalchemy import select

from survey_platform.models import Subscription
from survey_platform.models.base import utc_now
from survey_platform.models.subscription import RESOURCE_SURVEY, STATUS_ACTIVE, STATUS_CANCELLED
from survey_platform.services import limits

pytestmark = pytest.mark.integration


async def stripe_subscription_for(db, user, plan, status=STATUS_ACTIVE):
    now = utc_now()
    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        status=status,
        payment_provider="stripe",
        provider_subscription_id=f"sub_{user.id.hex[:8]}",
        provider_customer_id="cus_123",
        current_period_start=now,
        current_period_end=now + timedelta(days=30),
    )
    db.add(subscription)
    await db.commit()
    return subscription


class TestCheckout:

    @pytest.mark.asyncio
    async def test_creates_session(self, client: AsyncClient, free_user, free_headers, plans):
        plan = plans[("Pro", "USD")]

        with patch(
            "survey_platform.services.billing.stripe.checkout.Session.create",
            return_value={"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"},
        ) as create:
            response = await client.post("/api/billing/checkout", json={"planId": str(plan.id)}, headers=free_headers)

        assert response.status_code == 200
        assert response.json() == {"url": "https://checkout.stripe.test/cs_test_1"}
        params = create.call_args.kwargs
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_pro_usd", "quantity": 1}]
        assert params["metadata"] == {"userId": str(free_user.id), "planId": str(plan.id)}
        assert params["customer_email"] == free_user.email
        assert "customer" not in params

    @pytest.mark.asyncio
    async def test_reuses_stripe_customer(self, client: AsyncClient, test_db, pro_user, pro_headers, plans):
        await stripe_subscription_for(test_db, pro_user, plans[("Pro", "USD")])

        with patch(
            "survey_platform.services.billing.stripe.checkout.Session.create",
            return_value={"id": "cs_test_2", "url": "https://checkout.stripe.test/cs_test_2"},
        ) as create:
            response = await client.post(
                "/api/billing/checkout", json={"planId": str(plans[("Premium", "USD")].id)}, headers=pro_headers
            )

        assert response.status_code == 200
        assert create.call_args.kwargs["customer"] == "cus_123"
        assert "customer_email" not in create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_unknown_plan(self, client: AsyncClient, free_headers):
        response = await client.post(
            "/api/billing/checkout",
            json={"planId": "00000000-0000-0000-0000-000000000000"},
            headers=free_headers,
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid plan"}

    @pytest.mark.asyncio
    async def test_plan_without_stripe_price(self, client: AsyncClient, free_headers, plans):
        response = await client.post(
            "/api/billing/checkout", json={"planId": str(plans[("Pro", "XOF")].id)}, headers=free_headers
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Payment provider not supported for this plan"}

    @pytest.mark.asyncio
    async def test_stripe_error(self, client: AsyncClient, free_headers, plans):
        with patch(
            "survey_platform.services.billing.stripe.checkout.Session.create",
            side_effect=stripe.APIConnectionError("network down"),
        ):
            response = await client.post(
                "/api/billing/checkout", json={"planId": str(plans[("Pro", "USD")].id)}, headers=free_headers
            )

        assert response.status_code == 502
        assert response.json() == {"error": "Failed to create checkout session"}

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient, plans):
        response = await client.post("/api/billing/checkout", json={"planId": str(plans[("Pro", "USD")].id)})

        assert response.status_code == 401


class TestCancelSubscription:

    @pytest.mark.asyncio
    async def test_cancel_stripe_subscription(self, client: AsyncClient, test_db, pro_user, pro_headers, plans):
        subscription = await stripe_subscription_for(test_db, pro_user, plans[("Pro", "USD")])

        with patch("survey_platform.services.billing.stripe.Subscription.modify") as modify:
            response = await client.post(
                "/api/billing/cancel", json={"subscriptionId": str(subscription.id)}, headers=pro_headers
            )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["cancelAtPeriodEnd"] is True
        assert "currentPeriodEnd" in data
        modify.assert_called_once_with(subscription.provider_subscription_id, cancel_at_period_end=True)
        assert subscription.cancel_at_period_end is True

    @pytest.mark.asyncio
    async def test_not_owner(self, client: AsyncClient, test_db, pro_user, free_headers, plans):
        subscription = await stripe_subscription_for(test_db, pro_user, plans[("Pro", "USD")])

        response = await client.post(
            "/api/billing/cancel", json={"subscriptionId": str(subscription.id)}, headers=free_headers
        )

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}

    @pytest.mark.asyncio
    async def test_unknown_subscription(self, client: AsyncClient, free_headers):
        response = await client.post(
            "/api/billing/cancel",
            json={"subscriptionId": "00000000-0000-0000-0000-000000000000"},
            headers=free_headers,
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_already_cancelled(self, client: AsyncClient, test_db, pro_user, pro_headers, plans):
        subscription = await stripe_subscription_for(
            test_db, pro_user, plans[("Pro", "USD")], status=STATUS_CANCELLED
        )

        response = await client.post(
            "/api/billing/cancel", json={"subscriptionId": str(subscription.id)}, headers=pro_headers
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Subscription already cancelled"}

    @pytest.mark.asyncio
    async def test_manual_subscription_not_supported(self, client: AsyncClient, test_db, free_user, free_headers):
        subscription = (await test_db.execute(
            select(Subscription).where(Subscription.user_id == free_user.id)
        )).scalar_one()

        response = await client.post(
            "/api/billing/cancel", json={"subscriptionId": str(subscription.id)}, headers=free_headers
        )

        assert response.status_code == 501

    @pytest.mark.asyncio
    async def test_stripe_error(self, client: AsyncClient, test_db, pro_user, pro_headers, plans):
        subscription = await stripe_subscription_for(test_db, pro_user, plans[("Pro", "USD")])

        with patch(
            "survey_platform.services.billing.stripe.Subscription.modify",
            side_effect=stripe.APIConnectionError("network down"),
        ):
            response = await client.post(
                "/api/billing/cancel", json={"subscriptionId": str(subscription.id)}, headers=pro_headers
            )

        assert response.status_code == 502
        assert response.json() == {"error": "Failed to cancel subscription"}


class TestValidateDowngrade:

    @pytest.mark.asyncio
    async def test_allowed(self, client: AsyncClient, pro_headers, plans):
        response = await client.post(
            "/api/billing/validate-downgrade",
            json={"planId": str(plans[("Free", "USD")].id)},
            headers=pro_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"allowed": True, "violations": []}

    @pytest.mark.asyncio
    async def test_violations(self, client: AsyncClient, test_db, pro_user, pro_headers, plans):
        for _ in range(7):
            await limits.increment_usage(test_db, pro_user.id, RESOURCE_SURVEY)
        await test_db.commit()

        response = await client.post(
            "/api/billing/validate-downgrade",
            json={"planId": str(plans[("Free", "USD")].id)},
            headers=pro_headers,
        )

        data = response.json()
        assert data["allowed"] is False
        assert data["violations"] == [{"type": "surveys", "current": 7, "limit": 5, "excess": 2}]

    @pytest.mark.asyncio
    async def test_unknown_plan(self, client: AsyncClient, pro_headers):
        response = await client.post(
            "/api/billing/validate-downgrade",
            json={"planId": "00000000-0000-0000-0000-000000000000"},
            headers=pro_headers,
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Plan not found"}
