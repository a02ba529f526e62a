"""
Session authentication and organization authorization.

Provides FastAPI dependencies for:
- Session token validation (cookie or Bearer header)
- Impersonation (a sys admin with an active session acts as the target)
- Sys-admin gating
- Organization membership and permission checks
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_platform.config.settings import get_settings
from survey_platform.database import get_db
from survey_platform.models import ImpersonationSession, Organization, OrganizationMember, User
from survey_platform.security import verify_session_token
from survey_platform.services import organizations as org_service

logger = logging.getLogger(__name__)

# Optional so a missing header falls through to the cookie and then to 401
security = HTTPBearer(auto_error=False)

settings = get_settings()


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_session_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    Resolve the logged-in user from the session token, or None.

    The token is taken from the Bearer header first, then from the session cookie.
    """
    token = credentials.credentials if credentials else request.cookies.get(settings.session_cookie_name)
    if not token:
        return None

    try:
        payload = verify_session_token(token)
        user_id = UUID(payload["sub"])
    except (JWTError, ValueError, KeyError):
        return None

    return await db.get(User, user_id)


async def get_active_impersonation(db: AsyncSession, admin: User) -> Optional[ImpersonationSession]:
    """Latest open impersonation session of a sys admin."""
    if not admin.is_sys_admin:
        return None

    stmt = (
        select(ImpersonationSession)
        .options(selectinload(ImpersonationSession.target_user))
        .where(
            ImpersonationSession.admin_id == admin.id,
            ImpersonationSession.ended_at.is_(None),
        )
        .order_by(ImpersonationSession.started_at.desc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_actual_user(user: Optional[User] = Depends(get_session_user)) -> User:
    """
    Authenticated user, ignoring impersonation.

    Raises:
        HTTPException: 401 if not authenticated
    """
    if user is None:
        raise _unauthorized()
    return user


async def get_current_user(
    actual_user: User = Depends(get_actual_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Authenticated user as seen by the application.

    While a sys admin impersonates someone, this is the impersonated user.

    Raises:
        HTTPException: 401 if not authenticated
    """
    impersonation = await get_active_impersonation(db, actual_user)
    if impersonation is not None:
        return impersonation.target_user
    return actual_user


async def get_optional_user(
    user: Optional[User] = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user but returns None for anonymous requests."""
    if user is None:
        return None
    impersonation = await get_active_impersonation(db, user)
    return impersonation.target_user if impersonation else user


async def require_sys_admin(actual_user: User = Depends(get_actual_user)) -> User:
    """
    Require the real (not impersonated) user to be a sys admin.

    Raises:
        HTTPException: 403 if the user is not a sys admin
    """
    if not actual_user.is_sys_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden: sys_admin access required"
        )
    return actual_user


@dataclass
class OrganizationContext:
    """Organization, the caller, and the caller's membership (role and permissions loaded)."""

    organization: Organization
    user: User
    member: OrganizationMember

    @property
    def permissions(self) -> list[str]:
        return self.member.role.permission_names

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


async def load_organization_context(
    db: AsyncSession,
    organization_id: UUID,
    user: User,
    permission: Optional[str] = None,
) -> OrganizationContext:
    """
    Check that the organization exists and the user may act in it.

    Raises:
        HTTPException: 404 if the organization does not exist, 403 if the user
            is not a member or lacks the permission
    """
    organization = await org_service.get_organization(db, organization_id)
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found"
        )

    member = await org_service.get_member(db, organization_id, user.id)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this organization"
        )

    context = OrganizationContext(organization=organization, user=user, member=member)
    if permission and not context.has_permission(permission):
        logger.info(f"Permission {permission} denied for user {user.id} in organization {organization_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission denied: {permission} required"
        )

    return context


class OrganizationAccessChecker:
    """
    Dependency class for organization-level access control.

    Reads the organization_id path parameter and requires membership,
    plus a permission when one is given.

    Usage:
        @router.delete("/{organization_id}/members/{member_id}")
        async def remove_member(
            ctx: OrganizationContext = Depends(OrganizationAccessChecker("manage_users"))
        ):
            ...
    """

    def __init__(self, permission: Optional[str] = None):
        self.permission = permission

    async def __call__(
        self,
        organization_id: UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> OrganizationContext:
        return await load_organization_context(db, organization_id, current_user, self.permission)


# Shared instances
require_org_member = OrganizationAccessChecker()
require_manage_organization = OrganizationAccessChecker("manage_organization")
require_manage_users = OrganizationAccessChecker("manage_users")
require_manage_roles = OrganizationAccessChecker("manage_roles")
