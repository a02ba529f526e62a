"""
Subscription usage limits.

Gates resource creation on the plan tier of the acting user (or of the
organization owner for member seats) and on current usage counters.

Rules:
- Sys admins bypass every limit
- Users without an active or trialing subscription cannot create anything
- Plan limits are strings: a non-negative integer or "unlimited"
- Admin-set custom limits on the subscription override the plan
- Creation is denied once current >= limit
- A downgrade is blocked only when current usage strictly exceeds the new limit

Checks never write; the increment/decrement helpers do.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import delete, select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_platform.exceptions import PlanNotFoundError
from survey_platform.models import (
    Organization,
    OrganizationInvitation,
    OrganizationMember,
    Role,
    Subscription,
    SubscriptionPlan,
    Survey,
    UsageTracking,
    User,
)
from survey_platform.models.base import utc_now
from survey_platform.models.role import OWNER_ROLE
from survey_platform.models.subscription import (
    LIMIT_ORGANIZATIONS,
    LIMIT_SURVEYS,
    LIMIT_USERS,
    RESOURCE_ORGANIZATION,
    RESOURCE_SURVEY,
    RESOURCE_USER,
    STATUS_ACTIVE,
    STATUS_TRIALING,
)

logger = logging.getLogger(__name__)

UNLIMITED = "unlimited"

# PlanLimit.limit_type -> key in subscription.extra_metadata["custom_limits"]
CUSTOM_LIMIT_KEYS = {
    LIMIT_SURVEYS: "max_surveys",
    LIMIT_ORGANIZATIONS: "max_organizations",
    LIMIT_USERS: "max_members_per_org",
}

# PlanLimit.limit_type -> UsageTracking.resource_type
LIMIT_TO_RESOURCE = {
    LIMIT_SURVEYS: RESOURCE_SURVEY,
    LIMIT_ORGANIZATIONS: RESOURCE_ORGANIZATION,
    LIMIT_USERS: RESOURCE_USER,
}


def parse_limit_value(value: Union[str, int, None]) -> Optional[int]:
    """
    Parse a stored limit.

    Returns None for "unlimited", the integer otherwise.

    Raises:
        ValueError: If the value is neither "unlimited" nor a non-negative integer
    """
    if value is None or value == UNLIMITED:
        return None
    if isinstance(value, int):
        return value
    if not value.isdigit():
        raise ValueError(f"Invalid limit value: {value!r}")
    return int(value)


def usage_percentage(current: int, limit: Optional[int]) -> float:
    """
    Share of the limit in use, in percent.

    0 when unlimited, 100 when the limit is 0. Not capped: over-limit
    usage after a downgrade reads above 100.
    """
    if limit is None:
        return 0.0
    if limit <= 0:
        return 100.0
    return current / limit * 100


@dataclass
class LimitCheck:
    """Outcome of a usage-limit check."""

    allowed: bool
    current: int = 0
    limit: Optional[int] = None  # None means unlimited
    reason: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_unlimited(self) -> bool:
        return self.limit is None

    @property
    def percentage(self) -> float:
        return usage_percentage(self.current, self.limit)

    @property
    def limit_display(self) -> Union[int, str]:
        """Limit as exposed over HTTP: the integer or "unlimited"."""
        return UNLIMITED if self.limit is None else self.limit


@dataclass
class DowngradeViolation:
    type: str
    current: int
    limit: int

    @property
    def excess(self) -> int:
        return self.current - self.limit


@dataclass
class DowngradeCheck:
    allowed: bool
    violations: list[DowngradeViolation] = field(default_factory=list)


async def get_active_subscription(db: AsyncSession, user_id: UUID) -> Optional[Subscription]:
    """Newest active or trialing subscription of a user, with plan limits loaded."""
    stmt = (
        select(Subscription)
        .options(selectinload(Subscription.plan).selectinload(SubscriptionPlan.limits))
        .where(
            Subscription.user_id == user_id,
            Subscription.status.in_([STATUS_ACTIVE, STATUS_TRIALING]),
        )
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def resolve_limit(subscription: Subscription, limit_type: str) -> Optional[int]:
    """
    Effective limit of one type for a subscription.

    Custom limits win over the plan. None means unlimited, which is also
    the case when the plan defines no limit of that type.
    """
    custom_key = CUSTOM_LIMIT_KEYS.get(limit_type)
    custom_limits = subscription.custom_limits
    if custom_key and custom_limits.get(custom_key) is not None:
        return parse_limit_value(custom_limits[custom_key])

    for plan_limit in subscription.plan.limits:
        if plan_limit.limit_type == limit_type:
            return parse_limit_value(plan_limit.limit_value)

    return None


async def get_usage_count(
    db: AsyncSession,
    user_id: UUID,
    resource_type: str,
    organization_id: Optional[UUID] = None,
) -> int:
    usage = await _get_usage_row(db, user_id, resource_type, organization_id)
    return usage.current_count if usage else 0


async def _get_usage_row(
    db: AsyncSession,
    user_id: UUID,
    resource_type: str,
    organization_id: Optional[UUID],
) -> Optional[UsageTracking]:
    stmt = select(UsageTracking).where(
        UsageTracking.user_id == user_id,
        UsageTracking.resource_type == resource_type,
    )
    if organization_id is None:
        stmt = stmt.where(UsageTracking.organization_id.is_(None))
    else:
        stmt = stmt.where(UsageTracking.organization_id == organization_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def increment_usage(
    db: AsyncSession,
    user_id: UUID,
    resource_type: str,
    organization_id: Optional[UUID] = None,
) -> int:
    """Add one to a usage counter, creating it on first use. Returns the new count."""
    usage = await _get_usage_row(db, user_id, resource_type, organization_id)
    if usage is None:
        usage = UsageTracking(
            user_id=user_id,
            organization_id=organization_id,
            resource_type=resource_type,
            current_count=1,
        )
        db.add(usage)
    else:
        usage.current_count += 1
        usage.last_updated = utc_now()
    await db.flush()
    return usage.current_count


async def decrement_usage(
    db: AsyncSession,
    user_id: UUID,
    resource_type: str,
    organization_id: Optional[UUID] = None,
) -> int:
    """Subtract one from a usage counter, never going below zero."""
    usage = await _get_usage_row(db, user_id, resource_type, organization_id)
    if usage is None:
        return 0
    if usage.current_count > 0:
        usage.current_count -= 1
        usage.last_updated = utc_now()
        await db.flush()
    return usage.current_count


async def release_organization_usage(db: AsyncSession, organization_id: UUID) -> None:
    """
    Fold an organization's survey counters into their creators' personal counters.

    Called before the organization is deleted: its surveys become personal
    surveys, and the organization-scoped counters go away with it.
    """
    stmt = (
        select(Survey.user_id, func.count(Survey.id))
        .where(Survey.organization_id == organization_id)
        .group_by(Survey.user_id)
    )
    for user_id, count in (await db.execute(stmt)).all():
        usage = await _get_usage_row(db, user_id, RESOURCE_SURVEY, None)
        if usage is None:
            db.add(UsageTracking(
                user_id=user_id,
                organization_id=None,
                resource_type=RESOURCE_SURVEY,
                current_count=count,
            ))
        else:
            usage.current_count += count
            usage.last_updated = utc_now()

    await db.execute(delete(UsageTracking).where(UsageTracking.organization_id == organization_id))
    await db.flush()


async def _load_user(db: AsyncSession, user_id: UUID) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def check_survey_limit(db: AsyncSession, user_id: UUID) -> LimitCheck:
    """Can the user create another personal survey?"""
    user = await _load_user(db, user_id)
    if user is not None and user.is_sys_admin:
        return LimitCheck(allowed=True)

    subscription = await get_active_subscription(db, user_id) if user else None
    if subscription is None:
        return LimitCheck(
            allowed=False,
            limit=0,
            reason="no_active_subscription",
            message="No active subscription found",
        )

    limit = resolve_limit(subscription, LIMIT_SURVEYS)
    current = await get_usage_count(db, user_id, RESOURCE_SURVEY)
    if limit is None:
        return LimitCheck(allowed=True, current=current)

    if current >= limit:
        logger.info(f"Survey limit reached for user {user_id}: {current}/{limit}")
        return LimitCheck(
            allowed=False,
            current=current,
            limit=limit,
            reason="survey_limit_reached",
            message=f"You've reached your survey limit ({limit} surveys). Upgrade to create more.",
        )

    return LimitCheck(allowed=True, current=current, limit=limit)


async def check_organization_limit(db: AsyncSession, user_id: UUID) -> LimitCheck:
    """Can the user create another organization?"""
    user = await _load_user(db, user_id)
    if user is not None and user.is_sys_admin:
        return LimitCheck(allowed=True)

    subscription = await get_active_subscription(db, user_id) if user else None
    if subscription is None:
        return LimitCheck(
            allowed=False,
            limit=0,
            reason="no_active_subscription",
            message="No active subscription plan",
        )

    limit = resolve_limit(subscription, LIMIT_ORGANIZATIONS)
    current = await get_usage_count(db, user_id, RESOURCE_ORGANIZATION)
    if limit is None:
        return LimitCheck(allowed=True, current=current)

    if limit == 0:
        return LimitCheck(
            allowed=False,
            current=current,
            limit=0,
            reason="organization_upgrade_required",
            message="Your plan does not include organizations. Upgrade to create one.",
        )

    if current >= limit:
        logger.info(f"Organization limit reached for user {user_id}: {current}/{limit}")
        return LimitCheck(
            allowed=False,
            current=current,
            limit=limit,
            reason="organization_limit_reached",
            message=f"You've reached your organization limit ({limit}). Upgrade to create more.",
        )

    return LimitCheck(allowed=True, current=current, limit=limit)


async def check_member_limit(db: AsyncSession, organization_id: UUID) -> LimitCheck:
    """
    Can the organization take another member?

    Seats are governed by the owner's plan and count members plus
    pending, non-expired invitations.
    """
    organization = await db.get(Organization, organization_id)
    if organization is None:
        return LimitCheck(
            allowed=False,
            limit=0,
            reason="organization_not_found",
            message="Organization not found",
        )

    stmt = (
        select(OrganizationMember)
        .join(Role, OrganizationMember.role_id == Role.id)
        .options(selectinload(OrganizationMember.user))
        .where(
            OrganizationMember.organization_id == organization_id,
            Role.name == OWNER_ROLE,
        )
        .order_by(OrganizationMember.joined_at)
        .limit(1)
    )
    owner_member = (await db.execute(stmt)).scalar_one_or_none()
    if owner_member is None:
        return LimitCheck(
            allowed=False,
            limit=0,
            reason="owner_not_found",
            message="Organization owner not found",
        )

    if owner_member.user.is_sys_admin:
        return LimitCheck(allowed=True)

    subscription = await get_active_subscription(db, owner_member.user_id)
    if subscription is None:
        return LimitCheck(
            allowed=False,
            limit=0,
            reason="no_active_subscription",
            message="No active subscription plan",
        )

    limit = resolve_limit(subscription, LIMIT_USERS)
    current = await count_member_seats(db, organization_id)
    if limit is None:
        return LimitCheck(allowed=True, current=current)

    if current >= limit:
        logger.info(f"Member limit reached for organization {organization_id}: {current}/{limit}")
        return LimitCheck(
            allowed=False,
            current=current,
            limit=limit,
            reason="member_limit_reached",
            message=f"This organization has reached its member limit ({limit} members). Upgrade to invite more.",
        )

    return LimitCheck(allowed=True, current=current, limit=limit)


async def count_member_seats(db: AsyncSession, organization_id: UUID) -> int:
    """Members plus invitations that have not expired yet."""
    members = await db.scalar(
        select(func.count(OrganizationMember.id)).where(
            OrganizationMember.organization_id == organization_id
        )
    )
    pending = await db.scalar(
        select(func.count(OrganizationInvitation.id)).where(
            OrganizationInvitation.organization_id == organization_id,
            OrganizationInvitation.expires_at >= utc_now(),
        )
    )
    return (members or 0) + (pending or 0)


async def validate_downgrade(db: AsyncSession, user_id: UUID, new_plan_id: UUID) -> DowngradeCheck:
    """
    Compare the user's personal usage against the limits of a target plan.

    Raises:
        PlanNotFoundError: If the target plan does not exist
    """
    stmt = (
        select(SubscriptionPlan)
        .options(selectinload(SubscriptionPlan.limits))
        .where(SubscriptionPlan.id == new_plan_id)
    )
    plan = (await db.execute(stmt)).scalar_one_or_none()
    if plan is None:
        raise PlanNotFoundError(f"Plan {new_plan_id} not found")

    violations = []
    for plan_limit in plan.limits:
        limit = parse_limit_value(plan_limit.limit_value)
        resource_type = LIMIT_TO_RESOURCE.get(plan_limit.limit_type)
        if limit is None or resource_type is None:
            continue

        current = await get_usage_count(db, user_id, resource_type)
        if current > limit:
            violations.append(DowngradeViolation(type=plan_limit.limit_type, current=current, limit=limit))

    return DowngradeCheck(allowed=not violations, violations=violations)
