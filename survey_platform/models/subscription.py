"""
Billing models: plans, plan limits, subscriptions, payments and usage counters.

Limit values are stored as strings so a plan can carry the "unlimited"
sentinel next to numeric caps.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, Boolean, Integer, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from survey_platform.models.base import Base, utc_now

# Subscription statuses
STATUS_ACTIVE = "active"
STATUS_TRIALING = "trialing"
STATUS_PAST_DUE = "past_due"
STATUS_CANCELLED = "cancelled"

# Limit types on PlanLimit
LIMIT_SURVEYS = "surveys"
LIMIT_ORGANIZATIONS = "organizations"
LIMIT_USERS = "users"

# Resource types on UsageTracking
RESOURCE_SURVEY = "survey"
RESOURCE_ORGANIZATION = "organization"
RESOURCE_USER = "user"


class SubscriptionPlan(Base):
    """Plan tier offered to customers (one row per name and currency)."""

    __tablename__ = "subscription_plans"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)  # Free, Pro, Premium, Custom
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # minor units
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    interval: Mapped[str] = mapped_column(String(20), default="month", nullable=False)
    stripe_price_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    features: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    # Relationships
    limits: Mapped[list["PlanLimit"]] = relationship(
        "PlanLimit",
        back_populates="plan",
        cascade="all, delete-orphan"
    )
    subscriptions: Mapped[list["Subscription"]] = relationship(
        "Subscription",
        back_populates="plan"
    )

    __table_args__ = (
        UniqueConstraint("name", "currency", name="uq_plan_name_currency"),
    )

    def __repr__(self) -> str:
        return f"<SubscriptionPlan(name={self.name}, currency={self.currency})>"


class PlanLimit(Base):
    """Cap on one resource type for a plan."""

    __tablename__ = "plan_limits"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    plan_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("subscription_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    limit_type: Mapped[str] = mapped_column(String(50), nullable=False)  # surveys, organizations, users
    limit_value: Mapped[str] = mapped_column(String(50), nullable=False)  # integer or "unlimited"

    plan: Mapped["SubscriptionPlan"] = relationship(
        "SubscriptionPlan",
        back_populates="limits"
    )

    __table_args__ = (
        UniqueConstraint("plan_id", "limit_type", name="uq_plan_limit_type"),
    )

    def __repr__(self) -> str:
        return f"<PlanLimit(type={self.limit_type}, value={self.limit_value})>"


class Subscription(Base):
    """
    A user's subscription to a plan.

    extra_metadata may carry admin overrides under "custom_limits", e.g.
    {"custom_limits": {"max_surveys": 200}}.
    """

    __tablename__ = "subscriptions"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    # Foreign keys
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    plan_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    status: Mapped[str] = mapped_column(String(20), default=STATUS_ACTIVE, nullable=False, index=True)

    # Payment provider
    payment_provider: Mapped[str] = mapped_column(String(50), default="stripe", nullable=False)  # stripe, trial, manual
    provider_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    provider_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Billing period
    current_period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    current_period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    extra_metadata: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Timestamps
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
        back_populates="subscriptions"
    )
    plan: Mapped["SubscriptionPlan"] = relationship(
        "SubscriptionPlan",
        back_populates="subscriptions"
    )
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="subscription",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, user_id={self.user_id}, status={self.status})>"

    @property
    def custom_limits(self) -> dict:
        return (self.extra_metadata or {}).get("custom_limits") or {}


class Payment(Base):
    """Payment recorded from a provider invoice."""

    __tablename__ = "payments"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    subscription_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # minor units
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), default="stripe", nullable=False)
    provider_payment_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # completed, failed
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    subscription: Mapped["Subscription"] = relationship(
        "Subscription",
        back_populates="payments"
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, amount={self.amount} {self.currency}, status={self.status})>"


class UsageTracking(Base):
    """Counter of resources a user holds, optionally scoped to an organization."""

    __tablename__ = "usage_tracking"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    organization_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)  # survey, organization, user
    current_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", "resource_type", name="uq_usage_scope"),
    )

    def __repr__(self) -> str:
        return f"<UsageTracking(user_id={self.user_id}, type={self.resource_type}, count={self.current_count})>"
