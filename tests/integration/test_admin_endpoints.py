"""
Integration tests for sys-admin endpoints.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from survey_platform.models import AdminAction, Subscription
from survey_platform.models.base import as_utc
from survey_platform.models.subscription import RESOURCE_SURVEY
from survey_platform.services import limits

pytestmark = pytest.mark.integration


async def subscription_of(db, user):
    return (await db.execute(select(Subscription).where(Subscription.user_id == user.id))).scalar_one()


class TestAdminAccess:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", [
        "/api/admin/users?search=a",
        "/api/admin/subscriptions",
        "/api/admin/activity-log",
        "/api/admin/impersonation-history",
    ])
    async def test_regular_user_forbidden(self, client: AsyncClient, free_headers, path):
        response = await client.get(path, headers=free_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_anonymous_unauthorized(self, client: AsyncClient):
        response = await client.get("/api/admin/subscriptions")

        assert response.status_code == 401


class TestUserSearch:

    @pytest.mark.asyncio
    async def test_search_by_email_fragment(self, client: AsyncClient, free_user, pro_user, admin_headers):
        response = await client.get("/api/admin/users", params={"search": "PRO@"}, headers=admin_headers)

        assert [u["email"] for u in response.json()["users"]] == ["pro@example.com"]

    @pytest.mark.asyncio
    async def test_search_by_id(self, client: AsyncClient, free_user, admin_headers):
        response = await client.get("/api/admin/users", params={"search": str(free_user.id)}, headers=admin_headers)

        assert [u["id"] for u in response.json()["users"]] == [str(free_user.id)]

    @pytest.mark.asyncio
    async def test_empty_search(self, client: AsyncClient, free_user, admin_headers):
        response = await client.get("/api/admin/users", params={"search": "  "}, headers=admin_headers)

        assert response.json() == {"users": []}


class TestSubscriptions:

    @pytest.mark.asyncio
    async def test_list_and_filter(self, client: AsyncClient, free_user, pro_user, admin_headers):
        everything = await client.get("/api/admin/subscriptions", headers=admin_headers)
        pro_only = await client.get("/api/admin/subscriptions", params={"plan": "pro"}, headers=admin_headers)

        assert everything.json()["pagination"]["total"] == 2
        subscriptions = pro_only.json()["subscriptions"]
        assert [s["user"]["email"] for s in subscriptions] == ["pro@example.com"]
        assert subscriptions[0]["plan"]["name"] == "Pro"

    @pytest.mark.asyncio
    async def test_extend_period(self, client: AsyncClient, test_db, free_user, admin_headers):
        subscription = await subscription_of(test_db, free_user)
        old_end = as_utc(subscription.current_period_end)

        response = await client.patch(
            f"/api/admin/subscriptions/{subscription.id}",
            json={"extendPeriodDays": 10, "reason": "Goodwill"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["actionsLogged"] == 1
        assert (as_utc(subscription.current_period_end) - old_end).days == 10
        action = (await test_db.execute(select(AdminAction))).scalar_one()
        assert action.action == "extend_subscription_period"
        assert action.target_resource == f"subscription:{subscription.id}"
        assert action.extra_metadata["extendedDays"] == 10

    @pytest.mark.asyncio
    async def test_change_plan(self, client: AsyncClient, test_db, free_user, admin_headers, plans):
        subscription = await subscription_of(test_db, free_user)
        premium = plans[("Premium", "USD")]

        response = await client.patch(
            f"/api/admin/subscriptions/{subscription.id}",
            json={"newPlanId": str(premium.id)},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["subscription"]["plan"]["name"] == "Premium"
        assert free_user.current_plan_id == premium.id

    @pytest.mark.asyncio
    async def test_invalid_plan(self, client: AsyncClient, test_db, free_user, admin_headers):
        subscription = await subscription_of(test_db, free_user)

        response = await client.patch(
            f"/api/admin/subscriptions/{subscription.id}",
            json={"newPlanId": "00000000-0000-0000-0000-000000000000"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid plan ID"}

    @pytest.mark.asyncio
    async def test_custom_limits_apply(self, client: AsyncClient, test_db, free_user, free_headers, admin_headers):
        subscription = await subscription_of(test_db, free_user)
        for _ in range(5):
            await limits.increment_usage(test_db, free_user.id, RESOURCE_SURVEY)
        await test_db.commit()

        response = await client.patch(
            f"/api/admin/subscriptions/{subscription.id}",
            json={"customLimits": {"maxSurveys": 20, "maxOrganizations": "unlimited"}},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["subscription"]["customLimits"] == {
            "max_surveys": 20,
            "max_organizations": "unlimited",
        }
        usage = await client.get("/api/usage/surveys", headers=free_headers)
        assert usage.json()["limit"] == 20
        organizations = await client.get("/api/usage/organizations", headers=free_headers)
        assert organizations.json()["limit"] == "unlimited"

    @pytest.mark.asyncio
    async def test_negative_custom_limit_rejected(self, client: AsyncClient, test_db, free_user, admin_headers):
        subscription = await subscription_of(test_db, free_user)

        response = await client.patch(
            f"/api/admin/subscriptions/{subscription.id}",
            json={"customLimits": {"maxSurveys": -1}},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Validation error"
        assert subscription.custom_limits == {}

    @pytest.mark.asyncio
    async def test_unknown_subscription(self, client: AsyncClient, admin_headers):
        response = await client.patch(
            "/api/admin/subscriptions/00000000-0000-0000-0000-000000000000",
            json={"extendPeriodDays": 1},
            headers=admin_headers,
        )

        assert response.status_code == 404


class TestImpersonation:

    @pytest.mark.asyncio
    async def test_full_cycle(self, client: AsyncClient, free_user, admin_headers):
        started = await client.post(
            "/api/admin/impersonate",
            json={"targetUserId": str(free_user.id), "reason": "Support ticket"},
            headers=admin_headers,
        )
        assert started.status_code == 200
        assert started.json()["targetUser"]["email"] == "free@example.com"

        # Application routes now see the impersonated user
        status_response = await client.get("/api/user/subscription-status", headers=admin_headers)
        assert status_response.json() == {"status": "active"}

        # Admin routes still check the real user
        history = await client.get(
            "/api/admin/impersonation-history", params={"filter": "active"}, headers=admin_headers
        )
        assert history.status_code == 200
        assert len(history.json()["sessions"]) == 1

        stopped = await client.post("/api/admin/stop-impersonation", headers=admin_headers)
        assert stopped.status_code == 200
        assert stopped.json()["duration"] >= 0

        after = await client.get("/api/user/subscription-status", headers=admin_headers)
        assert after.json() == {"status": "none"}

        log = await client.get("/api/admin/activity-log", headers=admin_headers)
        actions = [a["action"] for a in log.json()["actions"]]
        assert sorted(actions) == ["impersonate_user", "stop_impersonation"]
        assert "metadata" in log.json()["actions"][0]

    @pytest.mark.asyncio
    async def test_cannot_impersonate_admin(self, client: AsyncClient, user_factory, admin_headers):
        other_admin = await user_factory("ops@example.com", is_sys_admin=True)

        response = await client.post(
            "/api/admin/impersonate", json={"targetUserId": str(other_admin.id)}, headers=admin_headers
        )

        assert response.status_code == 403
        assert response.json() == {"error": "Cannot impersonate another system administrator"}

    @pytest.mark.asyncio
    async def test_already_impersonating(self, client: AsyncClient, free_user, pro_user, admin_headers):
        await client.post("/api/admin/impersonate", json={"targetUserId": str(free_user.id)}, headers=admin_headers)

        response = await client.post(
            "/api/admin/impersonate", json={"targetUserId": str(pro_user.id)}, headers=admin_headers
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_target(self, client: AsyncClient, admin_headers):
        response = await client.post(
            "/api/admin/impersonate",
            json={"targetUserId": "00000000-0000-0000-0000-000000000000"},
            headers=admin_headers,
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_stop_without_session(self, client: AsyncClient, admin_headers):
        response = await client.post("/api/admin/stop-impersonation", headers=admin_headers)

        assert response.status_code == 404
        assert response.json() == {"error": "No active impersonation session found"}
