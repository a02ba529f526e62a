"""
Integration tests for invitation token endpoints.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select

from survey_platform.models import OrganizationInvitation, Role
from survey_platform.models.base import utc_now
from survey_platform.services import organizations as org_service
from survey_platform.services.invitations import generate_invitation_token

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def invite(test_db, pro_user, test_organization):
    """Create an invitation to the test organization."""

    async def create(email, role_name="Agent", expires_in=timedelta(days=7)):
        role = (await test_db.execute(
            select(Role).where(Role.organization_id == test_organization.id, Role.name == role_name)
        )).scalar_one()
        invitation = OrganizationInvitation(
            organization_id=test_organization.id,
            inviter_id=pro_user.id,
            role_id=role.id,
            invitee_email=email,
            token=generate_invitation_token(),
            expires_at=utc_now() + expires_in,
        )
        test_db.add(invitation)
        await test_db.commit()
        return invitation

    return create


class TestGetInvitation:

    @pytest.mark.asyncio
    async def test_details(self, client: AsyncClient, invite, test_organization):
        invitation = await invite("free@example.com")

        response = await client.get(f"/api/invitations/{invitation.token}")

        assert response.status_code == 200
        data = response.json()["invitation"]
        assert data["organizationName"] == "Acme Research"
        assert data["inviterName"] == "Pro User"
        assert data["roleName"] == "Agent"
        assert data["inviteeEmail"] == "free@example.com"
        assert data["expiresIn"] in ("Expires in 7 days", "Expires in 6 days")

    @pytest.mark.asyncio
    async def test_unknown_token(self, client: AsyncClient):
        response = await client.get("/api/invitations/not-a-token")

        assert response.status_code == 404
        assert response.json() == {"error": "Invitation not found"}

    @pytest.mark.asyncio
    async def test_expired(self, client: AsyncClient, invite):
        invitation = await invite("free@example.com", expires_in=timedelta(hours=-1))

        response = await client.get(f"/api/invitations/{invitation.token}")

        assert response.status_code == 410
        assert response.json() == {"error": "Invitation has expired"}


class TestAcceptInvitation:

    @pytest.mark.asyncio
    async def test_accept(self, client: AsyncClient, test_db, invite, free_user, free_headers, test_organization):
        invitation = await invite("free@example.com")

        response = await client.post(f"/api/invitations/{invitation.token}/accept", headers=free_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Invitation accepted successfully"
        assert data["organization"]["role"] == "Agent"
        assert await org_service.is_member(test_db, test_organization.id, free_user.id)
        assert (await test_db.execute(select(OrganizationInvitation))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_email_match_is_case_insensitive(self, client: AsyncClient, invite, free_headers):
        invitation = await invite("FREE@example.com")

        response = await client.post(f"/api/invitations/{invitation.token}/accept", headers=free_headers)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_wrong_email(self, client: AsyncClient, invite, free_headers):
        invitation = await invite("someone-else@example.com")

        response = await client.post(f"/api/invitations/{invitation.token}/accept", headers=free_headers)

        assert response.status_code == 403
        assert response.json()["error"] == "This invitation was sent to a different email address"

    @pytest.mark.asyncio
    async def test_already_member(self, client: AsyncClient, invite, free_user, free_headers, add_member, test_organization):
        await add_member(test_organization, free_user, "Agent")
        invitation = await invite("free@example.com")

        response = await client.post(f"/api/invitations/{invitation.token}/accept", headers=free_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "You are already a member of this organization"

    @pytest.mark.asyncio
    async def test_accept_with_all_seats_reserved(self, client: AsyncClient, invite, free_headers):
        """The last seat is held by this very invitation, so accepting still works."""
        for i in range(3):
            await invite(f"other{i}@example.com")
        invitation = await invite("free@example.com")

        response = await client.post(f"/api/invitations/{invitation.token}/accept", headers=free_headers)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient, invite):
        invitation = await invite("free@example.com")

        response = await client.post(f"/api/invitations/{invitation.token}/accept")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_expired(self, client: AsyncClient, invite, free_headers):
        invitation = await invite("free@example.com", expires_in=timedelta(days=-1))

        response = await client.post(f"/api/invitations/{invitation.token}/accept", headers=free_headers)

        assert response.status_code == 410


class TestDeclineInvitation:

    @pytest.mark.asyncio
    async def test_decline(self, client: AsyncClient, test_db, invite):
        invitation = await invite("free@example.com")

        response = await client.post(f"/api/invitations/{invitation.token}/decline")

        assert response.status_code == 200
        assert response.json() == {"message": "Invitation declined successfully"}
        assert (await test_db.execute(select(OrganizationInvitation))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_decline_expired(self, client: AsyncClient, invite):
        invitation = await invite("free@example.com", expires_in=timedelta(days=-1))

        response = await client.post(f"/api/invitations/{invitation.token}/decline")

        assert response.json() == {"message": "Expired invitation removed"}
