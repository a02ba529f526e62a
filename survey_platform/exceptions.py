"""
Error types and exception handlers.

Every error response has the shape {"error": message}; when an
HTTPException carries a dict detail, its extra keys (reason, current,
limit, ...) are merged into the body.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class PlanNotFoundError(Exception):
    """Target subscription plan does not exist."""


class SystemRolesMissingError(Exception):
    """System role templates have not been seeded."""


class ProviderNotSupportedError(Exception):
    """Operation is not available for the subscription's payment provider."""


def error_body(detail) -> dict:
    """Build the JSON error body from an HTTPException detail."""
    if isinstance(detail, dict):
        body = {k: v for k, v in detail.items() if k not in ("error", "message")}
        body["error"] = detail.get("error") or detail.get("message") or "Error"
        return body
    return {"error": str(detail)}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP exceptions as {"error": ...}."""
    if exc.status_code >= 500:
        logger.warning(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures as 400 responses."""
    errors = jsonable_encoder(exc.errors())
    logger.debug(f"Validation error on {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation error", "details": errors},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected errors with their traceback and hide the details."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
