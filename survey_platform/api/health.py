"""
Health check endpoint.
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from survey_platform.database import get_db, ping
from survey_platform.models import Survey, User
from survey_platform.models.base import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Check database connectivity.

    Returns 503 with status "error" when the database cannot be reached.
    """
    try:
        await ping(db)
        user_count = await db.scalar(select(func.count(User.id)))
        survey_count = await db.scalar(select(func.count(Survey.id)))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection error: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "error",
                "database": {"connected": False, "error": str(e)},
                "timestamp": utc_now().isoformat(),
            },
        )

    return {
        "status": "ok",
        "database": {
            "connected": True,
            "users": user_count,
            "surveys": survey_count,
        },
        "timestamp": utc_now().isoformat(),
    }
