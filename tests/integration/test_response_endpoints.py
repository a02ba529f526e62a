"""
Integration tests for reading submitted survey responses.
"""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.integration

QUESTIONS = [{"type": "text", "text": "Anything to add?"}]


async def published_survey(client, headers, **overrides):
    body = {"title": "Exit poll", "questions": QUESTIONS}
    body.update(overrides)
    created = await client.post("/api/surveys", json=body, headers=headers)
    assert created.status_code == 201, created.text
    survey = created.json()["survey"]
    published = await client.post(f"/api/surveys/{survey['id']}/publish", headers=headers)
    assert published.status_code == 200
    return survey


async def submit(client, survey, text):
    question_id = survey["questions"][0]["id"]
    response = await client.post(
        f"/api/public/surveys/{survey['uniqueId']}/responses",
        json={"answers": [{"questionId": question_id, "answer": text}]},
        headers={"User-Agent": "pytest", "X-Forwarded-For": "203.0.113.7"},
    )
    assert response.status_code == 200


class TestListResponses:

    @pytest.mark.asyncio
    async def test_creator_reads_responses(self, client: AsyncClient, free_headers):
        survey = await published_survey(client, free_headers)
        for text in ("first", "second", "third"):
            await submit(client, survey, text)

        response = await client.get(f"/api/surveys/{survey['id']}/responses", headers=free_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["pagination"] == {"page": 1, "limit": 20, "total": 3, "totalPages": 1}
        assert len(data["responses"]) == 3
        first = data["responses"][0]
        assert first["answers"][0]["questionId"] == survey["questions"][0]["id"]
        assert first["ipAddress"] == "203.0.113.7"
        assert first["userAgent"] == "pytest"
        assert "submittedAt" in first

    @pytest.mark.asyncio
    async def test_paginated(self, client: AsyncClient, free_headers):
        survey = await published_survey(client, free_headers)
        for text in ("a", "b", "c"):
            await submit(client, survey, text)

        response = await client.get(
            f"/api/surveys/{survey['id']}/responses", params={"page": 2, "limit": 2}, headers=free_headers
        )

        data = response.json()
        assert len(data["responses"]) == 1
        assert data["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}

    @pytest.mark.asyncio
    async def test_other_user_forbidden(self, client: AsyncClient, free_headers, pro_headers):
        survey = await published_survey(client, free_headers)

        response = await client.get(f"/api/surveys/{survey['id']}/responses", headers=pro_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_member_reads_shared_survey(
        self, client: AsyncClient, free_user, auth_headers, pro_headers, add_member, test_organization
    ):
        await add_member(test_organization, free_user, "Agent")
        survey = await published_survey(
            client, pro_headers, organizationId=str(test_organization.id), visibility="organization"
        )
        await submit(client, survey, "shared")

        response = await client.get(f"/api/surveys/{survey['id']}/responses", headers=auth_headers(free_user))

        assert response.status_code == 200
        assert response.json()["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_private_organization_survey_needs_analytics_permission(
        self, client: AsyncClient, free_user, premium_user, auth_headers, pro_headers, add_member, test_organization
    ):
        await add_member(test_organization, free_user, "Agent")
        await add_member(test_organization, premium_user, "Admin")
        survey = await published_survey(client, pro_headers, organizationId=str(test_organization.id))

        agent = await client.get(f"/api/surveys/{survey['id']}/responses", headers=auth_headers(free_user))
        admin = await client.get(f"/api/surveys/{survey['id']}/responses", headers=auth_headers(premium_user))

        assert agent.status_code == 403
        assert admin.status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_survey(self, client: AsyncClient, free_headers):
        response = await client.get(
            "/api/surveys/00000000-0000-0000-0000-000000000000/responses", headers=free_headers
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient, free_headers):
        survey = await published_survey(client, free_headers)

        response = await client.get(f"/api/surveys/{survey['id']}/responses")

        assert response.status_code == 401
