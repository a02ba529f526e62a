"""
Survey Platform API routes.

Provides REST API endpoints for:
- Health check
- Surveys, their questions and responses, and public survey responses
- Organizations, members, roles and invitations
- Usage limits, trials, billing and Stripe webhooks
- Blog posts
- Sys-admin tooling (user search, subscriptions, impersonation)
"""

from survey_platform.api.admin import router as admin_router
from survey_platform.api.billing import router as billing_router
from survey_platform.api.blog import router as blog_router
from survey_platform.api.health import router as health_router
from survey_platform.api.invitations import router as invitations_router
from survey_platform.api.organizations import router as organizations_router
from survey_platform.api.permissions import router as permissions_router
from survey_platform.api.public import router as public_router
from survey_platform.api.questions import router as questions_router
from survey_platform.api.surveys import router as surveys_router
from survey_platform.api.trial import router as trial_router
from survey_platform.api.usage import router as usage_router
from survey_platform.api.user import router as user_router
from survey_platform.api.webhooks import router as webhooks_router

__all__ = [
    "health_router",
    "surveys_router",
    "questions_router",
    "public_router",
    "organizations_router",
    "invitations_router",
    "permissions_router",
    "usage_router",
    "user_router",
    "trial_router",
    "billing_router",
    "webhooks_router",
    "blog_router",
    "admin_router",
]
