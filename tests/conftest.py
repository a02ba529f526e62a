"""
Pytest configuration and fixtures for Survey Platform tests.

Provides fixtures for:
- Database session (seeded permissions, system roles and plans)
- Test client
- Users on the Free, Pro and Premium plans, a user without a plan and a sys admin
- Session tokens
- An organization owned by the Pro user
"""

import os
from datetime import timedelta
from typing import AsyncGenerator, Callable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from survey_platform.database import Base, get_db
from survey_platform.main import app
from survey_platform.models import (
    Organization,
    OrganizationMember,
    Role,
    Subscription,
    SubscriptionPlan,
    User,
)
from survey_platform.models.base import utc_now
from survey_platform.models.subscription import RESOURCE_ORGANIZATION, STATUS_ACTIVE
from survey_platform.scripts.seed_data import seed_catalog
from survey_platform.security import create_session_token, hash_password
from survey_platform.services import limits
from survey_platform.services import organizations as org_service

# Test database URL (use file-based SQLite for tests to ensure table persistence)
TEST_DATABASE_URL = "sqlite+aiosqlite:///test_db.sqlite"

TEST_PASSWORD = "password123"


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests of services and dependencies")
    config.addinivalue_line("markers", "integration: HTTP endpoint tests")


@pytest_asyncio.fixture
async def test_engine():
    """Create test database engine."""
    # Remove old test database if exists
    if os.path.exists("test_db.sqlite"):
        os.remove("test_db.sqlite")

    engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()

    # Clean up test database file
    if os.path.exists("test_db.sqlite"):
        os.remove("test_db.sqlite")


@pytest_asyncio.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session with the reference catalogue installed."""
    async_session = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        await seed_catalog(session)
        await session.commit()
        yield session


@pytest_asyncio.fixture
async def plans(test_db: AsyncSession) -> dict[tuple[str, str], SubscriptionPlan]:
    """Seeded plans keyed by (name, currency)."""
    return await seed_catalog(test_db)


@pytest_asyncio.fixture
async def user_factory(test_db: AsyncSession, plans) -> Callable:
    """
    Create users.

    With a plan name the user gets a subscription to the USD plan in the
    given status and the plan becomes the current one.
    """

    async def create(
        email: str,
        name: str = "Test User",
        plan: Optional[str] = None,
        status: str = STATUS_ACTIVE,
        is_sys_admin: bool = False,
    ) -> User:
        user = User(
            email=email,
            name=name,
            hashed_password=hash_password(TEST_PASSWORD),
            is_sys_admin=is_sys_admin,
        )
        test_db.add(user)
        await test_db.flush()

        if plan is not None:
            subscription_plan = plans[(plan, "USD")]
            now = utc_now()
            test_db.add(Subscription(
                user_id=user.id,
                plan_id=subscription_plan.id,
                status=status,
                payment_provider="manual",
                current_period_start=now,
                current_period_end=now + timedelta(days=30),
            ))
            user.current_plan_id = subscription_plan.id

        await test_db.commit()
        return user

    return create


@pytest_asyncio.fixture
async def free_user(user_factory) -> User:
    return await user_factory("free@example.com", name="Free User", plan="Free")


@pytest_asyncio.fixture
async def pro_user(user_factory) -> User:
    return await user_factory("pro@example.com", name="Pro User", plan="Pro")


@pytest_asyncio.fixture
async def premium_user(user_factory) -> User:
    return await user_factory("premium@example.com", name="Premium User", plan="Premium")


@pytest_asyncio.fixture
async def no_plan_user(user_factory) -> User:
    return await user_factory("noplan@example.com", name="No Plan User")


@pytest_asyncio.fixture
async def sys_admin(user_factory) -> User:
    return await user_factory("admin@example.com", name="Platform Admin", is_sys_admin=True)


def make_auth_headers(user: User) -> dict[str, str]:
    token = create_session_token(user_id=user.id, email=user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Build Bearer headers for any user."""
    return make_auth_headers


@pytest.fixture
def free_headers(free_user: User) -> dict[str, str]:
    return make_auth_headers(free_user)


@pytest.fixture
def pro_headers(pro_user: User) -> dict[str, str]:
    return make_auth_headers(pro_user)


@pytest.fixture
def admin_headers(sys_admin: User) -> dict[str, str]:
    return make_auth_headers(sys_admin)


@pytest_asyncio.fixture
async def test_organization(test_db: AsyncSession, pro_user: User) -> Organization:
    """Organization owned by the Pro user, counted against their limit."""
    organization = await org_service.create_organization(
        test_db,
        name="Acme Research",
        owner_id=pro_user.id,
        description="Test organization",
    )
    await limits.increment_usage(test_db, pro_user.id, RESOURCE_ORGANIZATION)
    await test_db.commit()
    return organization


@pytest_asyncio.fixture
async def client(test_db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database session override."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def add_member(test_db: AsyncSession) -> Callable:
    """Add a user to an organization with one of its roles (by name)."""

    async def add(organization: Organization, user: User, role_name: str = "Agent") -> OrganizationMember:
        role = (await test_db.execute(
            select(Role).where(Role.organization_id == organization.id, Role.name == role_name)
        )).scalar_one()
        member = OrganizationMember(organization_id=organization.id, user_id=user.id, role_id=role.id)
        test_db.add(member)
        await test_db.commit()
        return member

    return add
