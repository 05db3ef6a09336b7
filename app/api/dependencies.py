"""
FastAPI Dependencies - Authentication, role gates and rate limits.

NO DICTIONARIES - All dependencies return typed objects.
"""

from collections.abc import AsyncIterator, Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.models import User
from app.db.session import get_db
from app.exceptions import AuthenticationError, RateLimitExceededError
from app.models.api import Role
from app.observability.metrics import metrics
from app.services.rate_limit import get_rate_limiters
from app.services.tokens import TokenService, get_token_service, require_role
from app.services.users import CredentialStore

logger = get_logger(__name__)

# Bearer token scheme for JWT auth
bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================================
# Request context
# ============================================================================


def client_ip(request: Request) -> str:
    """
    Caller address used for rate limits and the usage ledger.

    X-Forwarded-For is only read when the socket peer is a configured
    trusted proxy; the nearest hop that is not itself a trusted proxy wins.
    """
    peer = request.client.host if request.client is not None else None
    trusted = settings.trusted_proxy_ips

    if peer is not None and peer in trusted:
        forwarded = request.headers.get("X-Forwarded-For", "")
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        for hop in reversed(hops):
            if hop not in trusted:
                return hop

    return peer or "unknown"


def user_agent(request: Request) -> str | None:
    return request.headers.get("User-Agent")


# ============================================================================
# Authentication
# ============================================================================


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """
    Resolve the caller from `Authorization: Bearer <token>`.

    Role and subscription come from the stored user, never from the token.

    Raises:
        AuthenticationError: Missing/invalid token, unknown or deactivated user
    """
    if credentials is None:
        raise AuthenticationError("Not authorized to access this route")

    identity = tokens.authenticate(credentials.credentials)
    user = await CredentialStore(db).get_active(identity.user_id)

    request.state.user_id = str(user.id)
    return user


async def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> User | None:
    """Like get_current_user, but anonymous or invalid callers yield None."""
    if credentials is None:
        return None
    try:
        return await get_current_user(request, credentials, db, tokens)
    except AuthenticationError as e:
        logger.debug("optional_auth_ignored", reason=e.message)
        return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """
    Require admin role.

    Raises:
        AuthorizationError: Caller is not an admin
    """
    require_role(user.role, Role.ADMIN)
    return user


# ============================================================================
# Rate limits
# ============================================================================


def rate_limit(
    name: str, skip_successful: bool = False, by_user: bool = False
) -> Callable[[Request], AsyncIterator[None]]:
    """
    Dependency factory for a named limiter.

    Keyed by client IP. With by_user the authenticated user id is used
    instead when an earlier dependency set request.state.user_id. With
    skip_successful the hit is withdrawn once the endpoint returns without
    raising.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit("auth", skip_successful=True))])
    """

    async def dependency(request: Request) -> AsyncIterator[None]:
        if not settings.rate_limit_enabled:
            yield
            return

        limiter = get_rate_limiters().get(name)
        key = client_ip(request)
        if by_user:
            key = getattr(request.state, "user_id", None) or key
        decision = await limiter.hit(key)

        if not decision.allowed:
            metrics.record_rate_limited(name)
            logger.warning(
                "rate_limit_exceeded",
                limiter=name,
                key=key,
                retry_after_seconds=decision.retry_after_seconds,
            )
            raise RateLimitExceededError(name, limiter.message, decision.retry_after_seconds)

        yield

        if skip_successful:
            await limiter.undo(key)

    return dependency
