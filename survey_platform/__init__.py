"""
Survey Platform API

API-route layer of the multi-tenant survey SaaS:
- Organizations, roles and member invitations
- Subscription plans and usage-limit enforcement
- Stripe billing callbacks
- Public survey retrieval and response collection
- Blog content and sys-admin tooling
"""

__version__ = "1.0.0"

from survey_platform.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
