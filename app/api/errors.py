"""
Exception Handlers - Map the exception hierarchy onto the response envelope.

Every error leaves the API as {success: false, message, error?, data?}.
"""

import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from structlog import get_logger

from app.config import settings
from app.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    KeyUnavailableError,
    QuotaExceededError,
    RateLimitExceededError,
    ResourceNotFoundError,
    ValidationError,
)
from app.models.api import ApiResponse, QuotaStateData, Subscription
from app.observability.metrics import metrics

logger = get_logger(__name__)

QUOTA_EXCEEDED_MESSAGE = "Copy limit reached. Upgrade your subscription for more copies."


def envelope(
    status_code: int,
    message: str,
    error: str | None = None,
    data: object | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ApiResponse[object](success=False, message=message, error=error, data=data)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Log detailed validation errors and answer 400."""
    errors = exc.errors()
    messages = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=messages,
    )
    return envelope(
        status.HTTP_400_BAD_REQUEST,
        "Please provide all required fields",
        error="; ".join(messages),
    )


async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return envelope(status.HTTP_400_BAD_REQUEST, exc.message)


async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return envelope(status.HTTP_400_BAD_REQUEST, exc.message)


async def authentication_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return envelope(
        status.HTTP_401_UNAUTHORIZED,
        exc.message,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def authorization_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    logger.warning("authorization_denied", path=request.url.path, required_role=exc.required_role)
    return envelope(status.HTTP_403_FORBIDDEN, "Access denied. Admin only.")


async def quota_handler(request: Request, exc: QuotaExceededError) -> JSONResponse:
    state = QuotaStateData(
        copy_count=exc.copy_count,
        max_copy_limit=exc.max_copy_limit,
        subscription=Subscription(exc.subscription),
    )
    return envelope(status.HTTP_403_FORBIDDEN, QUOTA_EXCEEDED_MESSAGE, data=state)


async def not_found_handler(request: Request, exc: ResourceNotFoundError) -> JSONResponse:
    return envelope(status.HTTP_404_NOT_FOUND, f"{exc.resource} not found")


async def unavailable_handler(request: Request, exc: KeyUnavailableError) -> JSONResponse:
    return envelope(status.HTTP_410_GONE, exc.reason)


async def rate_limit_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    return envelope(
        status.HTTP_429_TOO_MANY_REQUESTS,
        exc.message,
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return envelope(exc.status_code, str(exc.detail), headers=exc.headers)


async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 with details only outside production."""
    metrics.record_error(type(exc).__name__, request.url.path)
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=exc,
    )
    error = None
    if not settings.is_production:
        error = "".join(traceback.format_exception(exc))
    return envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Something went wrong!", error=error)


def register_exception_handlers(app: FastAPI) -> None:
    """Install every handler on the application."""
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ValidationError, validation_handler)
    app.add_exception_handler(ConflictError, conflict_handler)
    app.add_exception_handler(AuthenticationError, authentication_handler)
    app.add_exception_handler(AuthorizationError, authorization_handler)
    app.add_exception_handler(QuotaExceededError, quota_handler)
    app.add_exception_handler(ResourceNotFoundError, not_found_handler)
    app.add_exception_handler(KeyUnavailableError, unavailable_handler)
    app.add_exception_handler(RateLimitExceededError, rate_limit_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_handler)
