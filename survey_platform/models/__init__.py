"""
Database models for the survey platform.

- Users and organizations (tenants) with RBAC roles and permissions
- Organization invitations
- Subscription plans, limits, subscriptions, payments and usage counters
- Surveys, questions and responses
- Blog posts
- Sys-admin impersonation sessions and action log
"""

from survey_platform.models.base import Base
from survey_platform.models.user import User
from survey_platform.models.organization import Organization, OrganizationMember
from survey_platform.models.role import Role, Permission, RolePermission
from survey_platform.models.invitation import OrganizationInvitation
from survey_platform.models.subscription import (
    SubscriptionPlan,
    PlanLimit,
    Subscription,
    Payment,
    UsageTracking,
)
from survey_platform.models.survey import Survey, Question, Response
from survey_platform.models.blog import BlogPost
from survey_platform.models.admin import ImpersonationSession, AdminAction

__all__ = [
    "Base",
    "User",
    "Organization",
    "OrganizationMember",
    "Role",
    "Permission",
    "RolePermission",
    "OrganizationInvitation",
    "SubscriptionPlan",
    "PlanLimit",
    "Subscription",
    "Payment",
    "UsageTracking",
    "Survey",
    "Question",
    "Response",
    "BlogPost",
    "ImpersonationSession",
    "AdminAction",
]
