"""
Authentication and authorization dependencies for the API.
"""

from .auth import (
    OrganizationAccessChecker,
    OrganizationContext,
    get_actual_user,
    get_current_user,
    get_optional_user,
    require_manage_organization,
    require_manage_roles,
    require_manage_users,
    require_org_member,
    require_sys_admin,
)

__all__ = [
    "get_current_user",
    "get_actual_user",
    "get_optional_user",
    "require_sys_admin",
    "OrganizationAccessChecker",
    "OrganizationContext",
    "require_org_member",
    "require_manage_organization",
    "require_manage_users",
    "require_manage_roles",
]
