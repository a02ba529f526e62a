"""
Seed data script.

Installs the reference data the API depends on (permissions, the system
organization with its role templates, subscription plans and limits) and,
for local development, a sys admin and a demo user.

Every step is idempotent; the catalogue helpers are shared with the test
fixtures.
"""

import asyncio
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_platform.database import AsyncSessionLocal, init_db
from survey_platform.models import (
    Organization,
    Permission,
    PlanLimit,
    Role,
    RolePermission,
    Subscription,
    SubscriptionPlan,
    User,
)
from survey_platform.models.base import utc_now
from survey_platform.models.organization import SYSTEM_ORGANIZATION_SLUG
from survey_platform.models.role import ADMIN_ROLE, AGENT_ROLE, OWNER_ROLE
from survey_platform.models.subscription import (
    LIMIT_ORGANIZATIONS,
    LIMIT_SURVEYS,
    LIMIT_USERS,
    STATUS_ACTIVE,
)
from survey_platform.security import hash_password

# (name, description, category)
PERMISSIONS = [
    ("manage_organization", "Edit organization settings and delete organization", "organization"),
    ("manage_users", "Invite, remove, and change roles of organization members", "organization"),
    ("manage_roles", "Create, edit, and delete custom roles", "organization"),
    ("create_surveys", "Create new surveys in the organization", "surveys"),
    ("manage_all_surveys", "Edit and delete all organization surveys", "surveys"),
    ("manage_own_surveys", "Edit and delete only surveys you created", "surveys"),
    ("view_all_analytics", "View analytics for all organization surveys", "analytics"),
    ("view_own_analytics", "View analytics only for surveys you created", "analytics"),
    ("export_data", "Export survey responses to CSV", "data"),
]

ALL_PERMISSIONS = [name for name, _, _ in PERMISSIONS]

SYSTEM_ROLES = {
    OWNER_ROLE: (
        "Full access to the organization",
        ALL_PERMISSIONS,
    ),
    ADMIN_ROLE: (
        "Manage members, roles and all surveys",
        [p for p in ALL_PERMISSIONS if p not in ("manage_organization", "manage_own_surveys", "view_own_analytics")],
    ),
    AGENT_ROLE: (
        "Create surveys and manage your own",
        ["create_surveys", "manage_own_surveys", "view_own_analytics"],
    ),
}

# (name, currency, description, price in minor units, stripe price id, limits)
PLANS = [
    ("Free", "USD", "Perfect for getting started", 0, None,
     {LIMIT_SURVEYS: "5", LIMIT_ORGANIZATIONS: "0", LIMIT_USERS: "1"}),
    ("Pro", "USD", "For growing teams", 2900, "price_pro_usd",
     {LIMIT_SURVEYS: "50", LIMIT_ORGANIZATIONS: "1", LIMIT_USERS: "5"}),
    ("Pro", "XOF", "Pour les équipes en croissance", 1500000, None,
     {LIMIT_SURVEYS: "50", LIMIT_ORGANIZATIONS: "1", LIMIT_USERS: "5"}),
    ("Premium", "USD", "For large organizations", 9900, "price_premium_usd",
     {LIMIT_SURVEYS: "unlimited", LIMIT_ORGANIZATIONS: "unlimited", LIMIT_USERS: "unlimited"}),
    ("Premium", "XOF", "Pour les grandes organisations", 5000000, None,
     {LIMIT_SURVEYS: "unlimited", LIMIT_ORGANIZATIONS: "unlimited", LIMIT_USERS: "unlimited"}),
    ("Custom", "USD", "Enterprise solution", 0, None,
     {LIMIT_SURVEYS: "unlimited", LIMIT_ORGANIZATIONS: "unlimited", LIMIT_USERS: "unlimited"}),
]


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    existing = {p.name: p for p in (await db.execute(select(Permission))).scalars().all()}
    for name, description, category in PERMISSIONS:
        if name not in existing:
            permission = Permission(name=name, description=description, category=category)
            db.add(permission)
            existing[name] = permission
    await db.flush()
    return existing


async def seed_system_roles(db: AsyncSession, permissions: dict[str, Permission]) -> Organization:
    """System organization holding the Owner/Admin/Agent templates."""
    stmt = (
        select(Organization)
        .options(selectinload(Organization.roles))
        .where(Organization.slug == SYSTEM_ORGANIZATION_SLUG)
    )
    system_org = (await db.execute(stmt)).scalar_one_or_none()
    if system_org is None:
        system_org = Organization(
            name="System",
            slug=SYSTEM_ORGANIZATION_SLUG,
            description="Default organization for system roles",
        )
        db.add(system_org)
        await db.flush()
        existing_roles = set()
    else:
        existing_roles = {role.name for role in system_org.roles}

    for name, (description, permission_names) in SYSTEM_ROLES.items():
        if name in existing_roles:
            continue
        role = Role(
            organization_id=system_org.id,
            name=name,
            description=description,
            is_system_role=True,
        )
        role.permissions = [RolePermission(permission_id=permissions[p].id) for p in permission_names]
        db.add(role)

    await db.flush()
    return system_org


async def seed_plans(db: AsyncSession) -> dict[tuple[str, str], SubscriptionPlan]:
    """Plans keyed by (name, currency)."""
    existing = {
        (plan.name, plan.currency): plan
        for plan in (await db.execute(select(SubscriptionPlan))).scalars().all()
    }
    for name, currency, description, price, stripe_price_id, limits in PLANS:
        if (name, currency) in existing:
            continue
        plan = SubscriptionPlan(
            name=name,
            currency=currency,
            description=description,
            price=price,
            interval="month",
            stripe_price_id=stripe_price_id,
            is_active=True,
        )
        plan.limits = [PlanLimit(limit_type=t, limit_value=v) for t, v in limits.items()]
        db.add(plan)
        existing[(name, currency)] = plan

    await db.flush()
    return existing


async def seed_catalog(db: AsyncSession) -> dict[tuple[str, str], SubscriptionPlan]:
    """Permissions, system roles and plans."""
    permissions = await seed_permissions(db)
    await seed_system_roles(db, permissions)
    return await seed_plans(db)


async def seed_database():
    """Create seed data for development."""

    print("🌱 Seeding database...")

    async with AsyncSessionLocal() as db:
        plans = await seed_catalog(db)
        await db.commit()
        print(f"  ✅ {len(PERMISSIONS)} permissions, {len(SYSTEM_ROLES)} system roles, {len(plans)} plans")

        if (await db.execute(select(User).where(User.email == "admin@example.com"))).scalar_one_or_none():
            print("⚠️  Sample users already exist. Skipping.")
            return

        print("\n👤 Creating users...")
        free_plan = plans[("Free", "USD")]
        admin = User(
            email="admin@example.com",
            name="Platform Admin",
            hashed_password=hash_password("password123"),
            is_sys_admin=True,
        )
        demo = User(
            email="demo@example.com",
            name="Demo User",
            hashed_password=hash_password("password123"),
            current_plan_id=free_plan.id,
        )
        db.add_all([admin, demo])
        await db.flush()

        now = utc_now()
        db.add(Subscription(
            user_id=demo.id,
            plan_id=free_plan.id,
            status=STATUS_ACTIVE,
            payment_provider="manual",
            current_period_start=now,
            current_period_end=now + timedelta(days=365),
        ))
        await db.commit()
        print(f"  ✅ Created {admin.email} (sys admin)")
        print(f"  ✅ Created {demo.email} (Free plan)")

    print("\n✅ Database seeded successfully!")
    print("\n🔑 Test Credentials:")
    print("  - admin@example.com / password123")
    print("  - demo@example.com / password123")


async def main():
    """Main entry point."""
    # Initialize database schema
    print("🔧 Initializing database schema...")
    await init_db()
    print("✅ Database schema created")

    # Seed data
    await seed_database()


if __name__ == "__main__":
    asyncio.run(main())
