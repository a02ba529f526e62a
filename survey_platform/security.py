"""
Security utilities.

Provides password hashing and verification using bcrypt, and the JWT
session tokens shared with the auth provider.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import bcrypt
from jose import jwt

from survey_platform.config.settings import get_settings

settings = get_settings()


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Hashed password as string
    """
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        password: Plain text password to verify
        hashed_password: Previously hashed password

    Returns:
        True if password matches, False otherwise (including malformed hashes)
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_session_token(user_id: UUID, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed session token.

    The auth provider issues these in production; the API only needs this
    for seeding and tests.

    Args:
        user_id: User UUID
        email: User email
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(days=settings.session_expire_days)

    to_encode = {
        "sub": str(user_id),  # Subject (user ID)
        "email": email,
        "exp": expire,
        "iat": now,
        "type": "session",
    }

    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_session_token(token: str) -> dict:
    """
    Verify and decode a session token.

    Raises:
        JWTError: If token is invalid or expired
        ValueError: If the token is not a session token
    """
    payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])

    if payload.get("type") != "session":
        raise ValueError(f"Invalid token type. Expected session, got {payload.get('type')}")

    return payload
