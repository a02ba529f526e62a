"""
Sys-admin audit models.

Tracks:
- Impersonation sessions (who acted as whom, for how long)
- Administrative actions on subscriptions and users
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from survey_platform.models.base import Base, utc_now


class ImpersonationSession(Base):
    """
    A sys admin acting as another user.

    The session is active while ended_at is NULL.
    """

    __tablename__ = "impersonation_sessions"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    admin_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    target_user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Request context
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)  # IPv6 support
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    admin: Mapped["User"] = relationship("User", foreign_keys=[admin_id])
    target_user: Mapped["User"] = relationship("User", foreign_keys=[target_user_id])

    def __repr__(self) -> str:
        return f"<ImpersonationSession(admin_id={self.admin_id}, target={self.target_user_id})>"


class AdminAction(Base):
    """Audit record of an administrative action."""

    __tablename__ = "admin_actions"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    admin_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    # Actions: impersonate_start, impersonate_end, extend_subscription,
    #          change_plan, set_custom_limits
    target_resource: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # e.g. "subscription:<id>"

    extra_metadata: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    performed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)

    admin: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return f"<AdminAction(action={self.action}, admin_id={self.admin_id})>"
