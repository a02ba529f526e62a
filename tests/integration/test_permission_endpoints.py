"""
Integration tests for the permission catalogue endpoint.
"""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.integration


class TestPermissionCatalogue:

    @pytest.mark.asyncio
    async def test_grouped_by_category(self, client: AsyncClient, free_headers):
        response = await client.get("/api/permissions", headers=free_headers)

        assert response.status_code == 200
        data = response.json()
        assert set(data["permissions"]) == {"analytics", "data", "organization", "surveys"}
        assert [p["name"] for p in data["permissions"]["data"]] == ["export_data"]
        assert len(data["allPermissions"]) == 9
        categories = [p["category"] for p in data["allPermissions"]]
        assert categories == sorted(categories)

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        response = await client.get("/api/permissions")

        assert response.status_code == 401
