"""
Auth Routes - Registration, login, profile and subscription changes.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_user, rate_limit
from app.db.models import User
from app.db.session import get_db
from app.models.api import (
    ApiResponse,
    AuthData,
    LoginRequest,
    ProfileData,
    RegisterRequest,
    UpgradeData,
    UpgradeRequest,
    UsageCounts,
)
from app.services.tokens import TokenService, get_token_service
from app.services.usage import UsageLedger
from app.services.users import CredentialStore

router = APIRouter(prefix="/api/auth", tags=["auth"])

auth_limit = Depends(rate_limit("auth", skip_successful=True))


def auth_data(user: User, token: str) -> AuthData:
    return AuthData(
        id=user.id,
        email=user.email,
        role=user.role,
        subscription=user.subscription,
        copy_count=user.copy_count,
        max_copy_limit=user.copy_limit.ceiling,
        token=token,
    )


@router.post(
    "/register",
    response_model=ApiResponse[AuthData],
    status_code=status.HTTP_201_CREATED,
    dependencies=[auth_limit],
)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> ApiResponse[AuthData]:
    """Create a free-tier account and return a bearer token."""
    user = await CredentialStore(db).register(request.email, request.password)
    return ApiResponse[AuthData](
        success=True,
        message="User registered successfully",
        data=auth_data(user, tokens.issue(user.id)),
    )


@router.post(
    "/login",
    response_model=ApiResponse[AuthData],
    dependencies=[auth_limit],
)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> ApiResponse[AuthData]:
    """Exchange email and password for a bearer token."""
    user = await CredentialStore(db).login(request.email, request.password)
    return ApiResponse[AuthData](
        success=True,
        message="Login successful",
        data=auth_data(user, tokens.issue(user.id)),
    )


@router.get(
    "/me",
    response_model=ApiResponse[ProfileData],
)
async def me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[ProfileData]:
    """Profile, quota state and per-action usage counts of the caller."""
    usage = await UsageLedger(db).user_stats(user.id)
    limit = user.copy_limit
    return ApiResponse[ProfileData](
        success=True,
        data=ProfileData(
            id=user.id,
            email=user.email,
            role=user.role,
            subscription=user.subscription,
            copy_count=user.copy_count,
            max_copy_limit=limit.ceiling,
            remaining_copies=limit.remaining(user.copy_count),
            copied_key_ids=list(user.copied_key_ids or []),
            last_copy_reset=user.last_copy_reset,
            last_login=user.last_login,
            created_at=user.created_at,
            usage=UsageCounts(copy_events=usage.copies, view_events=usage.views),
        ),
    )


@router.put(
    "/upgrade",
    response_model=ApiResponse[UpgradeData],
)
async def upgrade(
    request: UpgradeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[UpgradeData]:
    """Move the caller to another subscription tier."""
    user = await CredentialStore(db).upgrade(user, request.subscription)
    return ApiResponse[UpgradeData](
        success=True,
        message=f"Subscription upgraded to {request.subscription.value}",
        data=UpgradeData(
            subscription=user.subscription,
            max_copy_limit=user.copy_limit.ceiling,
        ),
    )
