"""
Survey models: surveys, their questions and submitted responses.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, Boolean, Integer, ForeignKey, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from survey_platform.models.base import Base, utc_now

# Survey lifecycle
STATUS_DRAFT = "draft"
STATUS_PUBLISHED = "published"
STATUS_ARCHIVED = "archived"

# Visibility inside an organization
VISIBILITY_PRIVATE = "private"
VISIBILITY_ORGANIZATION = "organization"


class Survey(Base):
    """
    Survey owned by a user, optionally shared with an organization.

    unique_id is the public identifier used in share links.
    """

    __tablename__ = "surveys"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )
    unique_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)

    # Ownership
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    organization_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_DRAFT, nullable=False, index=True)
    visibility: Mapped[str] = mapped_column(String(20), default=VISIBILITY_PRIVATE, nullable=False)

    # Lifecycle timestamps
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="surveys"
    )
    organization: Mapped[Optional["Organization"]] = relationship(
        "Organization",
        back_populates="surveys"
    )
    questions: Mapped[list["Question"]] = relationship(
        "Question",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="Question.order"
    )
    responses: Mapped[list["Response"]] = relationship(
        "Response",
        back_populates="survey",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Survey(id={self.id}, unique_id={self.unique_id}, status={self.status})>"


class Question(Base):
    """Question of a survey; options hold choices for choice-type questions."""

    __tablename__ = "questions"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    survey_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)  # text, single_choice, multiple_choice, rating, ...
    text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    survey: Mapped["Survey"] = relationship(
        "Survey",
        back_populates="questions"
    )

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, type={self.type}, order={self.order})>"


class Response(Base):
    """Anonymous submission to a published survey."""

    __tablename__ = "responses"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    survey_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    answers: Mapped[list] = mapped_column(JSON, nullable=False)  # [{"questionId": ..., "answer": ...}]

    # Request context
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)  # IPv6 support
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)

    survey: Mapped["Survey"] = relationship(
        "Survey",
        back_populates="responses"
    )

    def __repr__(self) -> str:
        return f"<Response(id={self.id}, survey_id={self.survey_id})>"
