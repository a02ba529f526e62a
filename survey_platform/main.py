"""
Survey Platform FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from survey_platform.api import (
    admin_router,
    billing_router,
    blog_router,
    health_router,
    invitations_router,
    organizations_router,
    permissions_router,
    public_router,
    questions_router,
    surveys_router,
    trial_router,
    usage_router,
    user_router,
    webhooks_router,
)
from survey_platform.config.settings import get_settings
from survey_platform.database import close_db
from survey_platform.exceptions import register_exception_handlers

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"{settings.app_name} API {settings.app_version} starting ({settings.environment})...")
    logger.info("API Documentation: http://localhost:8000/docs")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=f"{settings.app_name} API",
    description="Survey builder backend: surveys, organizations, plan limits and billing",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS middleware; credentials are required for the session cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(health_router)
app.include_router(surveys_router)
app.include_router(questions_router)
app.include_router(public_router)
app.include_router(organizations_router)
app.include_router(invitations_router)
app.include_router(permissions_router)
app.include_router(usage_router)
app.include_router(user_router)
app.include_router(trial_router)
app.include_router(billing_router)
app.include_router(webhooks_router)
app.include_router(blog_router)
app.include_router(admin_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "running"
    }
