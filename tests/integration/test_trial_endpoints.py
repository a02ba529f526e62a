"""
Integration tests for the free trial endpoint.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from survey_platform.models import Subscription

pytestmark = pytest.mark.integration


class TestStartTrial:

    @pytest.mark.asyncio
    async def test_start_trial(self, client: AsyncClient, test_db, no_plan_user, auth_headers, plans):
        response = await client.post("/api/trial/start", headers=auth_headers(no_plan_user))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["subscription"]["status"] == "trialing"
        assert "trialEnd" in data["subscription"]

        subscription = (await test_db.execute(
            select(Subscription).where(Subscription.user_id == no_plan_user.id)
        )).scalar_one()
        assert subscription.payment_provider == "trial"
        assert no_plan_user.has_used_trial is True
        assert no_plan_user.current_plan_id == plans[("Pro", "USD")].id

    @pytest.mark.asyncio
    async def test_trial_unlocks_pro_limits(self, client: AsyncClient, no_plan_user, auth_headers):
        headers = auth_headers(no_plan_user)
        await client.post("/api/trial/start", headers=headers)

        response = await client.get("/api/usage/surveys", headers=headers)

        assert response.json()["limit"] == 50

    @pytest.mark.asyncio
    async def test_trial_only_once(self, client: AsyncClient, no_plan_user, auth_headers):
        headers = auth_headers(no_plan_user)
        await client.post("/api/trial/start", headers=headers)

        response = await client.post("/api/trial/start", headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "You have already used your free trial"

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/trial/start")

        assert response.status_code == 401
