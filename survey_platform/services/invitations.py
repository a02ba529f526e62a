"""
Organization invitation token helpers.
"""

import math
import secrets
from datetime import datetime, timedelta
from typing import Optional

from survey_platform.config.settings import get_settings
from survey_platform.models.base import as_utc, utc_now

settings = get_settings()


def generate_invitation_token() -> str:
    """32 random bytes, URL-safe base64 without padding."""
    return secrets.token_urlsafe(32)


def get_invitation_expiration(now: Optional[datetime] = None) -> datetime:
    return (now or utc_now()) + timedelta(days=settings.invitation_expire_days)


def is_invitation_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    """
    Check if an invitation has expired.

    An invitation is still valid at exactly expires_at and expired strictly after.
    Naive datetimes are taken as UTC.
    """
    return as_utc(now or utc_now()) > as_utc(expires_at)


def format_invitation_expiration(expires_at: datetime, now: Optional[datetime] = None) -> str:
    """Human-readable expiry such as "Expires in 5 days"."""
    remaining = as_utc(expires_at) - as_utc(now or utc_now())
    days = math.ceil(remaining.total_seconds() / 86400)

    if days < 0:
        return "Expired"
    if days == 0:
        return "Expires today"
    if days == 1:
        return "Expires in 1 day"
    return f"Expires in {days} days"
