"""
Organization repository.

Creation copies the Owner/Admin/Agent templates held by the system
organization into organization-specific roles and makes the creator Owner.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_platform.exceptions import SystemRolesMissingError
from survey_platform.models import Organization, OrganizationMember, Role, RolePermission
from survey_platform.models.organization import SYSTEM_ORGANIZATION_SLUG
from survey_platform.models.role import OWNER_ROLE
from survey_platform.services.slug import generate_slug, is_valid_slug, make_slug_unique

logger = logging.getLogger(__name__)

SYSTEM_ROLE_COUNT = 3

FALLBACK_SLUG = "organization"
# Leaves room for a -N suffix within the 63-character slug limit
MAX_BASE_SLUG_LENGTH = 56


def _role_with_permissions():
    return selectinload(Role.permissions).selectinload(RolePermission.permission)


async def generate_unique_slug(db: AsyncSession, name: str, exclude_id: Optional[UUID] = None) -> str:
    """Slug for name that no other organization uses."""
    base_slug = generate_slug(name)[:MAX_BASE_SLUG_LENGTH].strip("-")
    if not base_slug:
        base_slug = FALLBACK_SLUG
    elif not is_valid_slug(base_slug):
        base_slug = f"{base_slug}-{FALLBACK_SLUG}"
    stmt = select(Organization.slug).where(Organization.slug.startswith(base_slug))
    if exclude_id is not None:
        stmt = stmt.where(Organization.id != exclude_id)
    existing = (await db.execute(stmt)).scalars().all()
    return make_slug_unique(base_slug, existing)


async def get_system_roles(db: AsyncSession) -> list[Role]:
    stmt = (
        select(Role)
        .join(Organization, Role.organization_id == Organization.id)
        .options(_role_with_permissions())
        .where(Organization.slug == SYSTEM_ORGANIZATION_SLUG, Role.is_system_role.is_(True))
    )
    return list((await db.execute(stmt)).scalars().all())


async def create_organization(
    db: AsyncSession,
    name: str,
    owner_id: UUID,
    description: Optional[str] = None,
) -> Organization:
    """
    Create an organization with its roles and owner membership.

    Only flushes; the caller commits so the whole setup is one transaction.

    Raises:
        SystemRolesMissingError: If the system role templates are not seeded
    """
    system_roles = await get_system_roles(db)
    if len(system_roles) != SYSTEM_ROLE_COUNT:
        raise SystemRolesMissingError("System roles not properly seeded. Run the seed script.")

    organization = Organization(
        name=name,
        slug=await generate_unique_slug(db, name),
        description=description,
    )
    db.add(organization)
    await db.flush()

    owner_role = None
    for system_role in system_roles:
        role = Role(
            organization_id=organization.id,
            name=system_role.name,
            description=system_role.description,
            is_system_role=False,
        )
        role.permissions = [RolePermission(permission_id=rp.permission_id) for rp in system_role.permissions]
        db.add(role)
        if system_role.name == OWNER_ROLE:
            owner_role = role

    await db.flush()

    db.add(OrganizationMember(
        organization_id=organization.id,
        user_id=owner_id,
        role_id=owner_role.id,
    ))
    await db.flush()

    logger.info(f"Organization created: {organization.slug} (owner {owner_id})")
    return organization


async def find_by_user(db: AsyncSession, user_id: UUID) -> list[tuple[Organization, OrganizationMember]]:
    """Organizations the user belongs to with their membership, newest first."""
    stmt = (
        select(Organization, OrganizationMember)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .options(selectinload(OrganizationMember.role))
        .where(OrganizationMember.user_id == user_id)
        .order_by(Organization.created_at.desc())
    )
    result = await db.execute(stmt)
    return [(org, member) for org, member in result.all()]


async def get_organization(db: AsyncSession, organization_id: UUID) -> Optional[Organization]:
    return await db.get(Organization, organization_id)


async def get_member(db: AsyncSession, organization_id: UUID, user_id: UUID) -> Optional[OrganizationMember]:
    """Membership with role and role permissions loaded."""
    stmt = (
        select(OrganizationMember)
        .options(selectinload(OrganizationMember.role).options(_role_with_permissions()))
        .where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def is_member(db: AsyncSession, organization_id: UUID, user_id: UUID) -> bool:
    stmt = select(OrganizationMember.id).where(
        OrganizationMember.organization_id == organization_id,
        OrganizationMember.user_id == user_id,
    )
    return (await db.execute(stmt)).first() is not None


async def get_user_role(db: AsyncSession, organization_id: UUID, user_id: UUID) -> Optional[Role]:
    member = await get_member(db, organization_id, user_id)
    return member.role if member else None


def permission_names(role: Optional[Role]) -> list[str]:
    if role is None:
        return []
    return role.permission_names


async def user_organization_ids(db: AsyncSession, user_id: UUID) -> list[UUID]:
    stmt = select(OrganizationMember.organization_id).where(OrganizationMember.user_id == user_id)
    return list((await db.execute(stmt)).scalars().all())


async def count_owners(db: AsyncSession, organization_id: UUID) -> int:
    stmt = (
        select(func.count(OrganizationMember.id))
        .join(Role, OrganizationMember.role_id == Role.id)
        .where(
            OrganizationMember.organization_id == organization_id,
            Role.name == OWNER_ROLE,
        )
    )
    return (await db.scalar(stmt)) or 0


async def count_members(db: AsyncSession, organization_id: UUID) -> int:
    stmt = select(func.count(OrganizationMember.id)).where(
        OrganizationMember.organization_id == organization_id
    )
    return (await db.scalar(stmt)) or 0
