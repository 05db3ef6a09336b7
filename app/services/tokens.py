"""
Token Service - Bearer token issuance and verification.

Tokens are HS256 JWTs whose only claim of interest is `sub` (the user id).
Role and subscription are always read fresh from the user record.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from structlog import get_logger

from app.config import settings
from app.exceptions import AuthenticationError, AuthorizationError
from app.models.api import Role
from app.models.domain import Identity

logger = get_logger(__name__)


class TokenService:
    """Issues and verifies user bearer tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_days: int = 30):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_days = expire_days

    def issue(self, user_id: UUID) -> str:
        """Sign a token for user_id valid for expire_days."""
        now = datetime.now(UTC)
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + timedelta(days=self.expire_days),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def authenticate(self, token: str) -> Identity:
        """
        Verify a bearer token.

        Raises:
            AuthenticationError: Token missing, malformed, badly signed or expired
        """
        if not token:
            raise AuthenticationError("Not authorized to access this route")

        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("jwt_token_expired")
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as exc:
            logger.warning("jwt_token_invalid", error=str(exc))
            raise AuthenticationError("Not authorized to access this route")

        try:
            user_id = UUID(str(payload["sub"]))
        except ValueError:
            logger.warning("jwt_subject_invalid")
            raise AuthenticationError("Not authorized to access this route")

        return Identity(user_id=user_id)


def require_role(role: str, required: Role) -> None:
    """Raise AuthorizationError unless role matches required."""
    if role != required.value:
        logger.warning("role_gate_denied", role=role, required=required.value)
        raise AuthorizationError(required.value)


_token_service: TokenService | None = None


def get_token_service() -> TokenService:
    """Process-wide token service built from settings."""
    global _token_service
    if _token_service is None:
        _token_service = TokenService(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expire_days=settings.jwt_expire_days,
        )
    return _token_service
