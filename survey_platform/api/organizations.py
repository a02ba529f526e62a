"""
Organization management API routes.

Provides:
- Organization CRUD (creation gated by the organization limit)
- Members (list, change role, remove)
- Invitations (list, create gated by the member limit, revoke)
- Roles (list, create, update, delete)
- The caller's role and permissions in an organization
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import EmailStr, Field, field_validator
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_platform.api.schemas import CamelModel
from survey_platform.config.settings import get_settings
from survey_platform.database import get_db
from survey_platform.exceptions import SystemRolesMissingError
from survey_platform.middleware.auth import (
    OrganizationContext,
    get_current_user,
    require_manage_organization,
    require_manage_roles,
    require_manage_users,
    require_org_member,
)
from survey_platform.models import (
    Organization,
    OrganizationInvitation,
    OrganizationMember,
    Permission,
    Role,
    RolePermission,
    Survey,
    User,
)
from survey_platform.models.role import OWNER_ROLE
from survey_platform.models.subscription import RESOURCE_ORGANIZATION
from survey_platform.services import limits
from survey_platform.services import organizations as org_service
from survey_platform.services.invitations import generate_invitation_token, get_invitation_expiration

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/organizations", tags=["organizations"])

settings = get_settings()


# Pydantic schemas
class OrganizationCreate(CamelModel):
    """Schema for creating a new organization."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Organization name is required")
        return value


class OrganizationUpdate(CamelModel):
    """Schema for updating an organization."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class OrganizationOut(CamelModel):
    id: UUID
    name: str
    slug: str
    description: Optional[str]
    role: Optional[str]
    member_count: int
    survey_count: int
    created_at: datetime
    updated_at: datetime


class OrganizationResponse(CamelModel):
    organization: OrganizationOut


class OrganizationListResponse(CamelModel):
    organizations: List[OrganizationOut]


class PermissionOut(CamelModel):
    id: UUID
    name: str
    description: Optional[str]
    category: str


class RoleSummary(CamelModel):
    id: UUID
    name: str
    description: Optional[str]
    is_system_role: bool


class MemberOut(CamelModel):
    id: UUID
    user_id: UUID
    name: str
    email: str
    image: Optional[str] = None
    role: RoleSummary
    joined_at: datetime


class MemberListResponse(CamelModel):
    members: List[MemberOut]


class MemberUpdate(CamelModel):
    role_id: UUID


class MemberResponse(CamelModel):
    member: MemberOut


class InvitationCreate(CamelModel):
    email: EmailStr
    role_id: UUID


class InviterOut(CamelModel):
    id: UUID
    name: str
    email: str


class InvitationOut(CamelModel):
    id: UUID
    email: str
    role: str
    role_id: UUID
    inviter: Optional[InviterOut] = None
    created_at: datetime
    expires_at: datetime
    invitation_url: Optional[str] = None


class InvitationListResponse(CamelModel):
    invitations: List[InvitationOut]


class InvitationResponse(CamelModel):
    invitation: InvitationOut


class RoleCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    permission_ids: List[UUID] = Field(..., min_length=1)


class RoleUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    permission_ids: Optional[List[UUID]] = Field(None, min_length=1)


class RoleOut(RoleSummary):
    permissions: List[PermissionOut] = []
    permission_count: int = 0
    member_count: int = 0


class RoleListResponse(CamelModel):
    roles: List[RoleOut]


class RoleResponse(CamelModel):
    role: RoleOut


class OrganizationPermissionsResponse(CamelModel):
    role: str
    permissions: List[str]


# Helpers
async def _organization_out(
    db: AsyncSession,
    organization: Organization,
    role_name: Optional[str],
) -> OrganizationOut:
    member_count = await org_service.count_members(db, organization.id)
    survey_count = await db.scalar(
        select(func.count(Survey.id)).where(Survey.organization_id == organization.id)
    )
    return OrganizationOut(
        id=organization.id,
        name=organization.name,
        slug=organization.slug,
        description=organization.description,
        role=role_name,
        member_count=member_count,
        survey_count=survey_count or 0,
        created_at=organization.created_at,
        updated_at=organization.updated_at,
    )


def _member_out(member: OrganizationMember) -> MemberOut:
    return MemberOut(
        id=member.id,
        user_id=member.user.id,
        name=member.user.name,
        email=member.user.email,
        image=member.user.image,
        role=RoleSummary.model_validate(member.role),
        joined_at=member.joined_at,
    )


async def _role_out(db: AsyncSession, role: Role) -> RoleOut:
    member_count = await db.scalar(
        select(func.count(OrganizationMember.id)).where(OrganizationMember.role_id == role.id)
    )
    permissions = [PermissionOut.model_validate(rp.permission) for rp in role.permissions]
    return RoleOut(
        id=role.id,
        name=role.name,
        description=role.description,
        is_system_role=role.is_system_role,
        permissions=permissions,
        permission_count=len(permissions),
        member_count=member_count or 0,
    )


async def _get_org_member(db: AsyncSession, organization_id: UUID, member_id: UUID) -> OrganizationMember:
    stmt = (
        select(OrganizationMember)
        .options(selectinload(OrganizationMember.user), selectinload(OrganizationMember.role))
        .where(OrganizationMember.id == member_id)
    )
    member = (await db.execute(stmt)).scalar_one_or_none()
    if member is None or member.organization_id != organization_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Member not found"
        )
    return member


async def _get_org_role(db: AsyncSession, organization_id: UUID, role_id: UUID) -> Role:
    stmt = (
        select(Role)
        .options(selectinload(Role.permissions).selectinload(RolePermission.permission))
        .where(Role.id == role_id)
    )
    role = (await db.execute(stmt)).scalar_one_or_none()
    if role is None or role.organization_id != organization_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Role not found"
        )
    return role


async def _load_permissions(db: AsyncSession, permission_ids: List[UUID]) -> List[Permission]:
    unique_ids = set(permission_ids)
    result = await db.execute(select(Permission).where(Permission.id.in_(unique_ids)))
    permissions = list(result.scalars().all())
    if len(permissions) != len(unique_ids):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="One or more invalid permission IDs"
        )
    return permissions


async def _ensure_role_name_free(
    db: AsyncSession,
    organization_id: UUID,
    name: str,
    exclude_id: Optional[UUID] = None,
) -> None:
    stmt = select(Role.id).where(Role.organization_id == organization_id, Role.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Role.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A role with this name already exists"
        )


def _is_protected_role(role: Role) -> bool:
    return role.is_system_role or role.name == OWNER_ROLE


# Organizations
@router.get("", response_model=OrganizationListResponse)
async def list_organizations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List the organizations the current user belongs to, newest first."""
    rows = await org_service.find_by_user(db, current_user.id)
    organizations = [await _organization_out(db, org, member.role.name) for org, member in rows]
    return OrganizationListResponse(organizations=organizations)


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    payload: OrganizationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a new organization owned by the current user.

    Raises:
        HTTPException: 403 with a reason when the organization limit is reached
    """
    check = await limits.check_organization_limit(db, current_user.id)
    if not check.allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": check.message or "Organization limit reached",
                "reason": check.reason,
                "current": check.current,
                "limit": check.limit_display,
            }
        )

    try:
        organization = await org_service.create_organization(
            db,
            name=payload.name,
            owner_id=current_user.id,
            description=payload.description,
        )
    except SystemRolesMissingError as e:
        logger.error(f"Cannot create organization: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "System configuration error",
                "message": "Organization roles are not properly configured. Please contact administrator.",
            }
        )

    await limits.increment_usage(db, current_user.id, RESOURCE_ORGANIZATION)
    await db.commit()

    out = await _organization_out(db, organization, OWNER_ROLE)
    return OrganizationResponse(organization=out)


@router.get("/{organization_id}", response_model=OrganizationResponse)
async def get_organization(
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_org_member)
):
    """Organization details with the caller's role."""
    out = await _organization_out(db, ctx.organization, ctx.member.role.name)
    return OrganizationResponse(organization=out)


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    payload: OrganizationUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_manage_organization)
):
    """Update name/description; a new name regenerates the slug."""
    organization = ctx.organization
    updates = payload.model_dump(exclude_unset=True)

    if updates.get("name"):
        organization.name = updates["name"].strip()
        organization.slug = await org_service.generate_unique_slug(
            db, organization.name, exclude_id=organization.id
        )
    if "description" in updates:
        organization.description = updates["description"]

    await db.commit()
    await db.refresh(organization)

    out = await _organization_out(db, organization, ctx.member.role.name)
    return OrganizationResponse(organization=out)


@router.delete("/{organization_id}")
async def delete_organization(
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_manage_organization)
):
    """Delete an organization; its surveys become personal and the owner's slot is released."""
    organization = ctx.organization

    stmt = (
        select(OrganizationMember.user_id)
        .join(Role, OrganizationMember.role_id == Role.id)
        .where(OrganizationMember.organization_id == organization.id, Role.name == OWNER_ROLE)
        .order_by(OrganizationMember.joined_at)
        .limit(1)
    )
    owner_id = (await db.execute(stmt)).scalar_one_or_none() or ctx.user.id

    await limits.release_organization_usage(db, organization.id)
    await db.delete(organization)
    await limits.decrement_usage(db, owner_id, RESOURCE_ORGANIZATION)
    await db.commit()

    logger.info(f"Organization {organization.id} deleted by user {ctx.user.id}")
    return {"message": "Organization deleted successfully"}


@router.get("/{organization_id}/permissions", response_model=OrganizationPermissionsResponse)
async def get_my_permissions(ctx: OrganizationContext = Depends(require_org_member)):
    """The caller's role name and permission names in this organization."""
    return OrganizationPermissionsResponse(role=ctx.member.role.name, permissions=ctx.permissions)


# Members
@router.get("/{organization_id}/members", response_model=MemberListResponse)
async def list_members(
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_org_member)
):
    stmt = (
        select(OrganizationMember)
        .options(selectinload(OrganizationMember.user), selectinload(OrganizationMember.role))
        .where(OrganizationMember.organization_id == ctx.organization.id)
        .order_by(OrganizationMember.joined_at.asc())
    )
    members = (await db.execute(stmt)).scalars().all()
    return MemberListResponse(members=[_member_out(m) for m in members])


@router.patch("/{organization_id}/members/{member_id}", response_model=MemberResponse)
async def update_member(
    member_id: UUID,
    payload: MemberUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_manage_users)
):
    """
    Change a member's role.

    Raises:
        HTTPException: 400 for a foreign role or when demoting the last owner
    """
    organization_id = ctx.organization.id
    member = await _get_org_member(db, organization_id, member_id)

    new_role = await db.get(Role, payload.role_id)
    if new_role is None or new_role.organization_id != organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid role for this organization"
        )

    if member.role.name == OWNER_ROLE and new_role.name != OWNER_ROLE:
        if await org_service.count_owners(db, organization_id) <= 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Organization must have at least one owner"
            )

    member.role_id = new_role.id
    member.role = new_role
    await db.commit()

    return MemberResponse(member=_member_out(member))


@router.delete("/{organization_id}/members/{member_id}")
async def remove_member(
    member_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_manage_users)
):
    """
    Remove a member.

    Raises:
        HTTPException: 400 when removing yourself or the last owner
    """
    organization_id = ctx.organization.id
    member = await _get_org_member(db, organization_id, member_id)

    if member.user_id == ctx.user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot remove yourself. Please use 'Leave Organization' instead."
        )

    if member.role.name == OWNER_ROLE and await org_service.count_owners(db, organization_id) <= 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot remove the last owner of the organization"
        )

    await db.delete(member)
    await db.commit()

    return {"message": "Member removed successfully"}


# Invitations
@router.get("/{organization_id}/invitations", response_model=InvitationListResponse)
async def list_invitations(
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_org_member)
):
    """Pending invitations, newest first."""
    stmt = (
        select(OrganizationInvitation)
        .options(selectinload(OrganizationInvitation.inviter), selectinload(OrganizationInvitation.role))
        .where(OrganizationInvitation.organization_id == ctx.organization.id)
        .order_by(OrganizationInvitation.created_at.desc())
    )
    invitations = (await db.execute(stmt)).scalars().all()

    return InvitationListResponse(invitations=[
        InvitationOut(
            id=invitation.id,
            email=invitation.invitee_email,
            role=invitation.role.name if invitation.role else "Unknown",
            role_id=invitation.role_id,
            inviter=InviterOut.model_validate(invitation.inviter) if invitation.inviter else None,
            created_at=invitation.created_at,
            expires_at=invitation.expires_at,
        )
        for invitation in invitations
    ])


@router.post(
    "/{organization_id}/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_invitation(
    payload: InvitationCreate,
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_manage_users)
):
    """
    Invite an email address to join with a role.

    Raises:
        HTTPException: 403 when the member limit is reached, 400 for duplicates
            or a role of another organization
    """
    organization_id = ctx.organization.id
    email = payload.email.lower()

    check = await limits.check_member_limit(db, organization_id)
    if not check.allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": check.message or "Member limit reached",
                "reason": check.reason,
                "current": check.current,
                "limit": check.limit_display,
            }
        )

    existing_member = await db.execute(
        select(OrganizationMember.id)
        .join(User, OrganizationMember.user_id == User.id)
        .where(OrganizationMember.organization_id == organization_id, func.lower(User.email) == email)
    )
    if existing_member.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already a member of this organization"
        )

    existing_invitation = await db.execute(
        select(OrganizationInvitation.id).where(
            OrganizationInvitation.organization_id == organization_id,
            OrganizationInvitation.invitee_email == email,
        )
    )
    if existing_invitation.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An invitation has already been sent to this email"
        )

    role = await db.get(Role, payload.role_id)
    if role is None or role.organization_id != organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid role for this organization"
        )

    token = generate_invitation_token()
    invitation = OrganizationInvitation(
        organization_id=organization_id,
        inviter_id=ctx.user.id,
        invitee_email=email,
        role_id=role.id,
        token=token,
        expires_at=get_invitation_expiration(),
    )
    db.add(invitation)
    await db.commit()
    await db.refresh(invitation)

    invitation_url = f"{settings.app_url.rstrip('/')}/invitations/{token}"
    logger.info(f"Invitation URL: {invitation_url}")
    logger.info(f"Invite {email} to join {ctx.organization.name} as {role.name}")

    return InvitationResponse(invitation=InvitationOut(
        id=invitation.id,
        email=invitation.invitee_email,
        role=role.name,
        role_id=role.id,
        created_at=invitation.created_at,
        expires_at=invitation.expires_at,
        invitation_url=invitation_url,
    ))


@router.delete("/{organization_id}/invitations/{invitation_id}")
async def revoke_invitation(
    invitation_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_manage_users)
):
    invitation = await db.get(OrganizationInvitation, invitation_id)
    if invitation is None or invitation.organization_id != ctx.organization.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invitation not found"
        )

    await db.delete(invitation)
    await db.commit()
    return {"message": "Invitation revoked successfully"}


# Roles
@router.get("/{organization_id}/roles", response_model=RoleListResponse)
async def list_roles(
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_org_member)
):
    """Roles of the organization, system roles first then by name."""
    stmt = (
        select(Role)
        .options(selectinload(Role.permissions).selectinload(RolePermission.permission))
        .where(Role.organization_id == ctx.organization.id)
        .order_by(Role.is_system_role.desc(), Role.name.asc())
    )
    roles = (await db.execute(stmt)).scalars().all()
    return RoleListResponse(roles=[await _role_out(db, role) for role in roles])


@router.post("/{organization_id}/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: RoleCreate,
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_manage_roles)
):
    """Create a custom role with the given permissions."""
    organization_id = ctx.organization.id
    await _ensure_role_name_free(db, organization_id, payload.name)
    permissions = await _load_permissions(db, payload.permission_ids)

    role = Role(
        organization_id=organization_id,
        name=payload.name,
        description=payload.description,
        is_system_role=False,
    )
    role.permissions = [RolePermission(permission=p) for p in permissions]
    db.add(role)
    await db.commit()

    role = await _get_org_role(db, organization_id, role.id)
    return RoleResponse(role=await _role_out(db, role))


@router.get("/{organization_id}/roles/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_org_member)
):
    role = await _get_org_role(db, ctx.organization.id, role_id)
    return RoleResponse(role=await _role_out(db, role))


@router.patch("/{organization_id}/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: UUID,
    payload: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_manage_roles)
):
    """
    Update a custom role.

    Raises:
        HTTPException: 400 for the Owner role, system roles and duplicate names
    """
    organization_id = ctx.organization.id
    role = await _get_org_role(db, organization_id, role_id)

    if _is_protected_role(role):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot edit system roles"
        )

    if payload.name and payload.name != role.name:
        await _ensure_role_name_free(db, organization_id, payload.name, exclude_id=role.id)
        role.name = payload.name

    if payload.description is not None:
        role.description = payload.description

    if payload.permission_ids is not None:
        permissions = await _load_permissions(db, payload.permission_ids)
        # Old rows must be gone before re-adding (role_id, permission_id) pairs
        role.permissions.clear()
        await db.flush()
        role.permissions.extend(RolePermission(permission=p) for p in permissions)

    await db.commit()

    role = await _get_org_role(db, organization_id, role.id)
    return RoleResponse(role=await _role_out(db, role))


@router.delete("/{organization_id}/roles/{role_id}")
async def delete_role(
    role_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: OrganizationContext = Depends(require_manage_roles)
):
    """
    Delete a custom role that no member holds.
    """
    role = await _get_org_role(db, ctx.organization.id, role_id)

    if _is_protected_role(role):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete system roles"
        )

    member_count = await db.scalar(
        select(func.count(OrganizationMember.id)).where(OrganizationMember.role_id == role.id)
    )
    if member_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"This role is assigned to {member_count} member(s) and cannot be deleted"
        )

    await db.delete(role)
    await db.commit()
    return {"message": "Role deleted successfully"}
