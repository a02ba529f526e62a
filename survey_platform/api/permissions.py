"""
Permission catalogue API route.
"""

from collections import defaultdict
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from survey_platform.api.schemas import CamelModel
from survey_platform.database import get_db
from survey_platform.middleware.auth import get_current_user
from survey_platform.models import Permission, User

router = APIRouter(prefix="/api/permissions", tags=["permissions"])


class PermissionOut(CamelModel):
    id: UUID
    name: str
    description: Optional[str]
    category: str


class PermissionCatalogue(CamelModel):
    permissions: Dict[str, List[PermissionOut]]
    all_permissions: List[PermissionOut]


@router.get("", response_model=PermissionCatalogue)
async def list_permissions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """All permissions, grouped by category and as a flat list."""
    stmt = select(Permission).order_by(Permission.category, Permission.name)
    permissions = [PermissionOut.model_validate(p) for p in (await db.execute(stmt)).scalars().all()]

    grouped = defaultdict(list)
    for permission in permissions:
        grouped[permission.category].append(permission)

    return PermissionCatalogue(permissions=dict(grouped), all_permissions=permissions)
