"""
Invitation endpoints for invitees (view, accept, decline by token).

Organization-side invitation management lives in api/organizations.py.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_platform.api.schemas import CamelModel
from survey_platform.database import get_db
from survey_platform.middleware.auth import get_current_user
from survey_platform.models import OrganizationInvitation, OrganizationMember, User
from survey_platform.services import limits
from survey_platform.services import organizations as org_service
from survey_platform.services.invitations import format_invitation_expiration, is_invitation_expired

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invitations", tags=["invitations"])


class InvitationDetails(CamelModel):
    id: UUID
    organization_id: UUID
    organization_name: str
    organization_description: Optional[str]
    inviter_name: str
    role_name: str
    invitee_email: str
    created_at: datetime
    expires_at: datetime
    expires_in: str


class InvitationDetailsResponse(CamelModel):
    invitation: InvitationDetails


class AcceptedOrganization(CamelModel):
    id: UUID
    name: str
    role: Optional[str] = None


class AcceptInvitationResponse(CamelModel):
    message: str
    organization: AcceptedOrganization


async def _get_invitation(db: AsyncSession, token: str) -> OrganizationInvitation:
    stmt = (
        select(OrganizationInvitation)
        .options(
            selectinload(OrganizationInvitation.organization),
            selectinload(OrganizationInvitation.inviter),
            selectinload(OrganizationInvitation.role),
        )
        .where(OrganizationInvitation.token == token)
    )
    invitation = (await db.execute(stmt)).scalar_one_or_none()
    if invitation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invitation not found"
        )
    return invitation


def _ensure_not_expired(invitation: OrganizationInvitation) -> None:
    if is_invitation_expired(invitation.expires_at):
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="Invitation has expired"
        )


@router.get("/{token}", response_model=InvitationDetailsResponse)
async def get_invitation(token: str, db: AsyncSession = Depends(get_db)):
    """
    Get invitation details by token.

    Raises:
        HTTPException: 404 if unknown, 410 if expired
    """
    invitation = await _get_invitation(db, token)
    _ensure_not_expired(invitation)

    return InvitationDetailsResponse(invitation=InvitationDetails(
        id=invitation.id,
        organization_id=invitation.organization.id,
        organization_name=invitation.organization.name,
        organization_description=invitation.organization.description,
        inviter_name=invitation.inviter.name,
        role_name=invitation.role.name if invitation.role else "Unknown",
        invitee_email=invitation.invitee_email,
        created_at=invitation.created_at,
        expires_at=invitation.expires_at,
        expires_in=format_invitation_expiration(invitation.expires_at),
    ))


@router.post("/{token}/accept", response_model=AcceptInvitationResponse)
async def accept_invitation(
    token: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Accept an invitation as the invited user.

    Accepting twice is harmless: an existing member just has the
    invitation removed.

    Raises:
        HTTPException: 404 unknown, 410 expired, 403 wrong email or member limit
    """
    invitation = await _get_invitation(db, token)
    _ensure_not_expired(invitation)

    if current_user.email.lower() != invitation.invitee_email.lower():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This invitation was sent to a different email address"
        )

    organization = invitation.organization

    if await org_service.is_member(db, invitation.organization_id, current_user.id):
        await db.delete(invitation)
        await db.commit()
        return AcceptInvitationResponse(
            message="You are already a member of this organization",
            organization=AcceptedOrganization(id=organization.id, name=organization.name),
        )

    # The pending invitation already holds one of the counted seats
    check = await limits.check_member_limit(db, invitation.organization_id)
    seat_reserved = check.reason == "member_limit_reached" and check.current - 1 < check.limit
    if not check.allowed and not seat_reserved:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": check.message or "Member limit reached",
                "reason": check.reason,
                "current": check.current,
                "limit": check.limit_display,
            }
        )

    role_name = invitation.role.name
    db.add(OrganizationMember(
        organization_id=invitation.organization_id,
        user_id=current_user.id,
        role_id=invitation.role_id,
    ))
    await db.delete(invitation)
    await db.commit()

    logger.info(f"User {current_user.id} joined organization {organization.id} as {role_name}")

    return AcceptInvitationResponse(
        message="Invitation accepted successfully",
        organization=AcceptedOrganization(id=organization.id, name=organization.name, role=role_name),
    )


@router.post("/{token}/decline")
async def decline_invitation(token: str, db: AsyncSession = Depends(get_db)):
    """
    Decline an invitation. Anyone holding the token may decline, expired or not.
    """
    invitation = await _get_invitation(db, token)
    expired = is_invitation_expired(invitation.expires_at)

    await db.delete(invitation)
    await db.commit()

    return {
        "message": "Expired invitation removed" if expired else "Invitation declined successfully",
    }
