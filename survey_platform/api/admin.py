"""
Sys-admin API routes.

User search, subscription management, the admin activity log and
impersonation. Every mutating action is recorded as an AdminAction.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, List, Literal, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import AliasChoices, Field, NonNegativeInt
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_platform.api.public import client_ip
from survey_platform.api.schemas import CamelModel, PageParams, Pagination
from survey_platform.database import get_db
from survey_platform.middleware.auth import get_active_impersonation, require_sys_admin
from survey_platform.models import (
    AdminAction,
    ImpersonationSession,
    Subscription,
    SubscriptionPlan,
    User,
)
from survey_platform.models.base import as_utc, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

USER_SEARCH_LIMIT = 10

LimitValue = Union[NonNegativeInt, Literal["unlimited"]]


# Pydantic schemas
class UserBrief(CamelModel):
    id: UUID
    name: str
    email: str


class UserSearchResult(UserBrief):
    image: Optional[str]
    is_sys_admin: bool
    created_at: datetime


class UserSearchResponse(CamelModel):
    users: List[UserSearchResult]


class PlanBrief(CamelModel):
    id: UUID
    name: str
    price: int
    currency: str


class AdminSubscription(CamelModel):
    id: UUID
    user_id: UUID
    plan_id: UUID
    status: str
    payment_provider: str
    provider_subscription_id: Optional[str]
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    custom_limits: dict
    created_at: datetime
    user: UserBrief
    plan: PlanBrief


class SubscriptionListResponse(CamelModel):
    subscriptions: List[AdminSubscription]
    pagination: Pagination


class CustomLimits(CamelModel):
    max_surveys: Optional[LimitValue] = None
    max_organizations: Optional[LimitValue] = None
    max_members_per_org: Optional[LimitValue] = None


class SubscriptionUpdate(CamelModel):
    extend_period_days: Optional[int] = Field(None, gt=0)
    new_plan_id: Optional[UUID] = None
    custom_limits: Optional[CustomLimits] = None
    reason: Optional[str] = None


class SubscriptionUpdateResponse(CamelModel):
    subscription: AdminSubscription
    actions_logged: int


class ActivityEntry(CamelModel):
    id: UUID
    action: str
    target_resource: Optional[str]
    extra_metadata: Optional[dict] = Field(
        None,
        validation_alias=AliasChoices("extra_metadata", "metadata"),
        serialization_alias="metadata",
    )
    performed_at: datetime
    admin: UserBrief


class ActivityLogResponse(CamelModel):
    actions: List[ActivityEntry]
    pagination: Pagination


class ImpersonateRequest(CamelModel):
    target_user_id: UUID
    reason: Optional[str] = None


class ImpersonateResponse(CamelModel):
    success: bool
    session_id: UUID
    target_user: UserBrief


class StopImpersonationResponse(CamelModel):
    success: bool
    duration: int


class ImpersonationEntry(CamelModel):
    id: UUID
    reason: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    started_at: datetime
    ended_at: Optional[datetime]
    admin: UserBrief
    target_user: UserBrief


class ImpersonationHistoryResponse(CamelModel):
    sessions: List[ImpersonationEntry]
    pagination: Pagination


# Helpers
def _log_action(
    db: AsyncSession,
    admin: User,
    action: str,
    target_resource: str,
    metadata: dict[str, Any],
) -> AdminAction:
    entry = AdminAction(
        admin_id=admin.id,
        action=action,
        target_resource=target_resource,
        extra_metadata=metadata,
    )
    db.add(entry)
    logger.info(f"Admin action {action} on {target_resource} by {admin.email}")
    return entry


async def _load_subscription(db: AsyncSession, subscription_id: UUID) -> Subscription:
    stmt = (
        select(Subscription)
        .options(selectinload(Subscription.user), selectinload(Subscription.plan))
        .where(Subscription.id == subscription_id)
        .execution_options(populate_existing=True)
    )
    subscription = (await db.execute(stmt)).scalar_one_or_none()
    if subscription is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found"
        )
    return subscription


# Users
@router.get("/users", response_model=UserSearchResponse)
async def search_users(
    search: str = Query(""),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_sys_admin)
):
    """Match email or name (case-insensitive) or an exact user id; at most 10 results."""
    query = search.strip()
    if not query:
        return UserSearchResponse(users=[])

    pattern = f"%{query}%"
    conditions = [User.email.ilike(pattern), User.name.ilike(pattern)]
    try:
        user_id = UUID(query)
    except ValueError:
        user_id = None
    if user_id is not None:
        conditions.append(User.id == user_id)

    stmt = select(User).where(or_(*conditions)).order_by(User.name).limit(USER_SEARCH_LIMIT)
    users = (await db.execute(stmt)).scalars().all()
    return UserSearchResponse(users=[UserSearchResult.model_validate(u) for u in users])


# Subscriptions
@router.get("/subscriptions", response_model=SubscriptionListResponse)
async def list_subscriptions(
    search: str = Query(""),
    plan: str = Query(""),
    subscription_status: str = Query("", alias="status"),
    provider: str = Query(""),
    page: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_sys_admin)
):
    """Subscriptions filtered by user, plan name, status and provider, newest first."""
    stmt = select(Subscription).join(Subscription.user).join(Subscription.plan)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(User.email.ilike(pattern), User.name.ilike(pattern)))
    if plan:
        stmt = stmt.where(SubscriptionPlan.name.ilike(f"%{plan}%"))
    if subscription_status:
        stmt = stmt.where(Subscription.status == subscription_status)
    if provider:
        stmt = stmt.where(Subscription.payment_provider == provider)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    stmt = (
        stmt.options(selectinload(Subscription.user), selectinload(Subscription.plan))
        .order_by(Subscription.created_at.desc())
        .offset(page.offset)
        .limit(page.limit)
    )
    subscriptions = (await db.execute(stmt)).scalars().all()

    return SubscriptionListResponse(
        subscriptions=[AdminSubscription.model_validate(s) for s in subscriptions],
        pagination=page.pagination(total or 0),
    )


@router.patch("/subscriptions/{subscription_id}", response_model=SubscriptionUpdateResponse)
async def update_subscription(
    subscription_id: UUID,
    payload: SubscriptionUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_sys_admin)
):
    """
    Extend the billing period, change the plan and/or set custom limits.

    Raises:
        HTTPException: 404 unknown subscription, 400 unknown plan
    """
    subscription = await _load_subscription(db, subscription_id)
    target = f"subscription:{subscription.id}"
    reason = payload.reason or None
    actions = []

    if payload.extend_period_days:
        old_end = as_utc(subscription.current_period_end)
        new_end = old_end + timedelta(days=payload.extend_period_days)
        subscription.current_period_end = new_end
        actions.append(_log_action(db, admin, "extend_subscription_period", target, {
            "userId": str(subscription.user_id),
            "extendedDays": payload.extend_period_days,
            "oldEnd": old_end.isoformat(),
            "newEnd": new_end.isoformat(),
            "reason": reason,
        }))

    if payload.new_plan_id and payload.new_plan_id != subscription.plan_id:
        new_plan = await db.get(SubscriptionPlan, payload.new_plan_id)
        if new_plan is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid plan ID"
            )
        old_plan = subscription.plan
        subscription.plan_id = new_plan.id
        subscription.user.current_plan_id = new_plan.id
        actions.append(_log_action(db, admin, "change_subscription_plan", target, {
            "userId": str(subscription.user_id),
            "oldPlanId": str(old_plan.id),
            "oldPlanName": old_plan.name,
            "newPlanId": str(new_plan.id),
            "newPlanName": new_plan.name,
            "reason": reason,
        }))

    if payload.custom_limits is not None:
        custom_limits = payload.custom_limits.model_dump(exclude_none=True)
        subscription.extra_metadata = {
            **(subscription.extra_metadata or {}),
            "custom_limits": custom_limits,
        }
        actions.append(_log_action(db, admin, "set_custom_limits", target, {
            "userId": str(subscription.user_id),
            "customLimits": payload.custom_limits.model_dump(by_alias=True, exclude_none=True),
            "reason": reason,
        }))

    subscription.updated_at = utc_now()
    await db.commit()

    subscription = await _load_subscription(db, subscription_id)
    return SubscriptionUpdateResponse(
        subscription=AdminSubscription.model_validate(subscription),
        actions_logged=len(actions),
    )


# Activity log
@router.get("/activity-log", response_model=ActivityLogResponse)
async def activity_log(
    action: str = Query(""),
    search: str = Query(""),
    page: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_sys_admin)
):
    """Admin actions, newest first; search matches the target resource."""
    conditions = []
    if action:
        conditions.append(AdminAction.action == action)
    if search:
        conditions.append(AdminAction.target_resource.ilike(f"%{search}%"))

    total = await db.scalar(select(func.count(AdminAction.id)).where(*conditions))
    stmt = (
        select(AdminAction)
        .options(selectinload(AdminAction.admin))
        .where(*conditions)
        .order_by(AdminAction.performed_at.desc())
        .offset(page.offset)
        .limit(page.limit)
    )
    actions = (await db.execute(stmt)).scalars().all()

    return ActivityLogResponse(
        actions=[ActivityEntry.model_validate(a) for a in actions],
        pagination=page.pagination(total or 0),
    )


# Impersonation
@router.post("/impersonate", response_model=ImpersonateResponse)
async def start_impersonation(
    payload: ImpersonateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_sys_admin)
):
    """
    Start acting as another user.

    Raises:
        HTTPException: 403 when already impersonating or the target is a
            sys admin, 404 unknown target
    """
    if await get_active_impersonation(db, admin) is not None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Already impersonating a user. Stop current impersonation first."
        )

    target = await db.get(User, payload.target_user_id)
    if target is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Target user not found"
        )
    if target.is_sys_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot impersonate another system administrator"
        )

    session = ImpersonationSession(
        admin_id=admin.id,
        target_user_id=target.id,
        reason=payload.reason,
        ip_address=client_ip(request) or "unknown",
        user_agent=request.headers.get("user-agent", "unknown"),
    )
    db.add(session)
    await db.flush()

    _log_action(db, admin, "impersonate_user", f"user:{target.id}", {
        "targetUserEmail": target.email,
        "targetUserName": target.name,
        "reason": payload.reason,
        "impersonationSessionId": str(session.id),
    })
    await db.commit()

    return ImpersonateResponse(
        success=True,
        session_id=session.id,
        target_user=UserBrief.model_validate(target),
    )


@router.post("/stop-impersonation", response_model=StopImpersonationResponse)
async def stop_impersonation(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_sys_admin)
):
    """
    End the active impersonation session.

    Returns:
        Session duration in seconds
    """
    session = await get_active_impersonation(db, admin)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active impersonation session found"
        )

    ended_at = utc_now()
    duration = int((ended_at - as_utc(session.started_at)).total_seconds())
    session.ended_at = ended_at

    _log_action(db, admin, "stop_impersonation", f"user:{session.target_user_id}", {
        "impersonationSessionId": str(session.id),
        "duration": duration,
        "targetUserEmail": session.target_user.email,
        "targetUserName": session.target_user.name,
    })
    await db.commit()

    return StopImpersonationResponse(success=True, duration=duration)


@router.get("/impersonation-history", response_model=ImpersonationHistoryResponse)
async def impersonation_history(
    session_filter: Literal["all", "active", "completed"] = Query("all", alias="filter"),
    page: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_sys_admin)
):
    conditions = []
    if session_filter == "active":
        conditions.append(ImpersonationSession.ended_at.is_(None))
    elif session_filter == "completed":
        conditions.append(ImpersonationSession.ended_at.is_not(None))

    total = await db.scalar(select(func.count(ImpersonationSession.id)).where(*conditions))
    stmt = (
        select(ImpersonationSession)
        .options(
            selectinload(ImpersonationSession.admin),
            selectinload(ImpersonationSession.target_user),
        )
        .where(*conditions)
        .order_by(ImpersonationSession.started_at.desc())
        .offset(page.offset)
        .limit(page.limit)
    )
    sessions = (await db.execute(stmt)).scalars().all()

    return ImpersonationHistoryResponse(
        sessions=[ImpersonationEntry.model_validate(s) for s in sessions],
        pagination=page.pagination(total or 0),
    )
