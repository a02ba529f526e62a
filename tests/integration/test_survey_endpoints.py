"""
Integration tests for survey management endpoints.
"""

import pytest
from httpx import AsyncClient

from survey_platform.models.subscription import RESOURCE_SURVEY
from survey_platform.services import limits

pytestmark = pytest.mark.integration

QUESTIONS = [
    {"type": "text", "text": "What do you think?", "required": True},
    {"type": "single_choice", "text": "Pick one", "options": ["A", "B"]},
]


async def create_survey(client, headers, **overrides):
    body = {"title": "Customer feedback", "questions": QUESTIONS}
    body.update(overrides)
    response = await client.post("/api/surveys", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["survey"]


class TestCreateSurvey:

    @pytest.mark.asyncio
    async def test_create_personal_survey(self, client: AsyncClient, test_db, free_user, free_headers):
        survey = await create_survey(client, free_headers, description="Q3")

        assert survey["status"] == "draft"
        assert survey["visibility"] == "private"
        assert survey["organizationId"] is None
        assert survey["questionCount"] == 2
        assert [q["order"] for q in survey["questions"]] == [0, 1]
        assert survey["questions"][1]["options"] == ["A", "B"]
        assert len(survey["uniqueId"]) == 12
        assert await limits.get_usage_count(test_db, free_user.id, RESOURCE_SURVEY) == 1

    @pytest.mark.asyncio
    async def test_survey_limit_reached(self, client: AsyncClient, test_db, free_user, free_headers):
        for _ in range(5):
            await limits.increment_usage(test_db, free_user.id, RESOURCE_SURVEY)
        await test_db.commit()

        response = await client.post("/api/surveys", json={"title": "One more"}, headers=free_headers)

        assert response.status_code == 403
        data = response.json()
        assert data["reason"] == "survey_limit_reached"
        assert data["current"] == 5
        assert data["limit"] == 5

    @pytest.mark.asyncio
    async def test_no_subscription(self, client: AsyncClient, no_plan_user, auth_headers):
        response = await client.post(
            "/api/surveys", json={"title": "Nope"}, headers=auth_headers(no_plan_user)
        )

        assert response.status_code == 403
        assert response.json()["reason"] == "no_active_subscription"

    @pytest.mark.asyncio
    async def test_organization_survey(self, client: AsyncClient, test_db, pro_user, pro_headers, test_organization):
        survey = await create_survey(
            client, pro_headers, organizationId=str(test_organization.id), visibility="organization"
        )

        assert survey["organizationId"] == str(test_organization.id)
        assert await limits.get_usage_count(
            test_db, pro_user.id, RESOURCE_SURVEY, test_organization.id
        ) == 1
        assert await limits.get_usage_count(test_db, pro_user.id, RESOURCE_SURVEY) == 0

    @pytest.mark.asyncio
    async def test_non_member_organization(self, client: AsyncClient, free_headers, test_organization):
        response = await client.post(
            "/api/surveys",
            json={"title": "Sneaky", "organizationId": str(test_organization.id)},
            headers=free_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_organization_visibility_needs_organization(self, client: AsyncClient, free_headers):
        response = await client.post(
            "/api/surveys", json={"title": "Shared", "visibility": "organization"}, headers=free_headers
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_visibility(self, client: AsyncClient, free_headers):
        response = await client.post(
            "/api/surveys", json={"title": "Shared", "visibility": "public"}, headers=free_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Validation error"


class TestSurveyAccess:

    @pytest.mark.asyncio
    async def test_list_own_surveys(self, client: AsyncClient, free_headers, pro_headers):
        await create_survey(client, free_headers, title="Mine")
        await create_survey(client, pro_headers, title="Theirs")

        response = await client.get("/api/surveys", headers=free_headers)

        surveys = response.json()["surveys"]
        assert [s["title"] for s in surveys] == ["Mine"]
        assert surveys[0]["questionCount"] == 2
        assert surveys[0]["responseCount"] == 0

    @pytest.mark.asyncio
    async def test_private_survey_hidden(self, client: AsyncClient, free_headers, pro_headers):
        survey = await create_survey(client, pro_headers)

        response = await client.get(f"/api/surveys/{survey['id']}", headers=free_headers)

        assert response.status_code == 403
        assert response.json()["error"] == "You do not have access to this survey"

    @pytest.mark.asyncio
    async def test_organization_survey_visible_to_members(
        self, client: AsyncClient, free_user, auth_headers, pro_headers, add_member, test_organization
    ):
        await add_member(test_organization, free_user, "Agent")
        survey = await create_survey(
            client, pro_headers, organizationId=str(test_organization.id), visibility="organization"
        )
        member_headers = auth_headers(free_user)

        read = await client.get(f"/api/surveys/{survey['id']}", headers=member_headers)
        edit = await client.patch(f"/api/surveys/{survey['id']}", json={"title": "Mine now"}, headers=member_headers)

        assert read.status_code == 200
        assert edit.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_survey(self, client: AsyncClient, free_headers):
        response = await client.get(
            "/api/surveys/00000000-0000-0000-0000-000000000000", headers=free_headers
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Survey not found"}


class TestUpdateDelete:

    @pytest.mark.asyncio
    async def test_update_replaces_questions(self, client: AsyncClient, free_headers):
        survey = await create_survey(client, free_headers)

        response = await client.patch(
            f"/api/surveys/{survey['id']}",
            json={"title": "Renamed", "questions": [{"type": "rating", "text": "Rate us"}]},
            headers=free_headers,
        )

        assert response.status_code == 200
        updated = response.json()["survey"]
        assert updated["title"] == "Renamed"
        assert [q["text"] for q in updated["questions"]] == ["Rate us"]

    @pytest.mark.asyncio
    async def test_delete_releases_slot(self, client: AsyncClient, test_db, free_user, free_headers):
        survey = await create_survey(client, free_headers)

        response = await client.delete(f"/api/surveys/{survey['id']}", headers=free_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Survey deleted successfully"}
        assert await limits.get_usage_count(test_db, free_user.id, RESOURCE_SURVEY) == 0

    @pytest.mark.asyncio
    async def test_only_creator_deletes(self, client: AsyncClient, free_headers, pro_headers):
        survey = await create_survey(client, pro_headers)

        response = await client.delete(f"/api/surveys/{survey['id']}", headers=free_headers)

        assert response.status_code == 403


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_publish_unpublish_archive(self, client: AsyncClient, free_headers):
        survey = await create_survey(client, free_headers)
        url = f"/api/surveys/{survey['id']}"

        published = await client.post(f"{url}/publish", headers=free_headers)
        assert published.status_code == 200
        assert published.json()["survey"]["status"] == "published"
        assert published.json()["survey"]["publishedAt"] is not None

        unpublished = await client.delete(f"{url}/publish", headers=free_headers)
        assert unpublished.json()["survey"]["status"] == "draft"

        archived = await client.post(f"{url}/archive", headers=free_headers)
        assert archived.json()["survey"]["status"] == "archived"

    @pytest.mark.asyncio
    async def test_publish_without_questions(self, client: AsyncClient, free_headers):
        survey = await create_survey(client, free_headers, questions=[])

        response = await client.post(f"/api/surveys/{survey['id']}/publish", headers=free_headers)

        assert response.status_code == 400
        assert response.json() == {
            "error": "Survey validation failed",
            "validationErrors": ["Survey must have at least one question"],
        }

    @pytest.mark.asyncio
    async def test_duplicate(self, client: AsyncClient, test_db, pro_user, pro_headers, test_organization):
        survey = await create_survey(
            client, pro_headers, organizationId=str(test_organization.id), visibility="organization"
        )

        response = await client.post(f"/api/surveys/{survey['id']}/duplicate", headers=pro_headers)

        assert response.status_code == 201
        copy = response.json()["survey"]
        assert copy["title"] == "Customer feedback - Copy"
        assert copy["status"] == "draft"
        assert copy["visibility"] == "private"
        assert copy["organizationId"] is None
        assert copy["uniqueId"] != survey["uniqueId"]
        assert [q["text"] for q in copy["questions"]] == [q["text"] for q in QUESTIONS]
        assert await limits.get_usage_count(test_db, pro_user.id, RESOURCE_SURVEY) == 1

    @pytest.mark.asyncio
    async def test_duplicate_respects_limit(self, client: AsyncClient, test_db, free_user, free_headers):
        survey = await create_survey(client, free_headers)
        for _ in range(4):
            await limits.increment_usage(test_db, free_user.id, RESOURCE_SURVEY)
        await test_db.commit()

        response = await client.post(f"/api/surveys/{survey['id']}/duplicate", headers=free_headers)

        assert response.status_code == 403
