"""
Credential Store - User records, registration, login and tier changes.

NO DICTIONARIES - All data uses typed models/dataclasses.
"""

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID, uuid4

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import User, utc_now
from app.exceptions import AuthenticationError, ConflictError
from app.models.api import Role, Subscription
from app.services.quota import QuotaEngine

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
ACCOUNT_DEACTIVATED = "Your account has been deactivated"


class CredentialStore:
    """Service for user persistence and the credential flows built on it."""

    def __init__(self, db: AsyncSession, password_hasher: PasswordHasher | None = None):
        self.db = db
        self.password_hasher = password_hasher or PasswordHasher()

    # ========================================================================
    # Lookups
    # ========================================================================

    async def get_by_id(self, user_id: UUID) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        """Case-insensitive lookup; emails are stored lower-cased."""
        stmt = select(User).where(User.email == email.strip().lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active(self, user_id: UUID) -> User:
        """
        Resolve the user behind a verified token.

        Raises:
            AuthenticationError: User no longer exists or is deactivated
        """
        user = await self.get_by_id(user_id)
        if user is None:
            raise AuthenticationError("User not found")
        if not user.is_active:
            raise AuthenticationError(ACCOUNT_DEACTIVATED)
        return user

    async def list_users(self) -> Sequence[User]:
        """All users, newest first."""
        result = await self.db.execute(select(User).order_by(User.created_at.desc()))
        return result.scalars().all()

    async def recent(self, limit: int = 5) -> Sequence[User]:
        stmt = select(User).order_by(User.created_at.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def count(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(User))
        return int(result.scalar_one())

    # ========================================================================
    # Flows
    # ========================================================================

    async def register(self, email: str, password: str) -> User:
        """
        Create a free-tier user.

        Args:
            email: Stored lower-cased and trimmed
            password: Plaintext, hashed with Argon2id before storage

        Raises:
            ConflictError: Email already registered
        """
        email = email.strip().lower()
        if await self.get_by_email(email) is not None:
            logger.info("registration_duplicate_email", email=email)
            raise ConflictError("User already exists with this email")

        user = User(
            id=uuid4(),
            email=email,
            password_hash=self.password_hasher.hash(password),
            role=Role.USER.value,
            subscription=Subscription.FREE.value,
            copy_count=0,
            copied_key_ids=[],
            last_copy_reset=utc_now(),
            is_active=True,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            # Concurrent registration for the same email
            await self.db.rollback()
            raise ConflictError("User already exists with this email")
        await self.db.refresh(user)

        logger.info("user_registered", user_id=str(user.id), email=email)
        return user

    async def login(self, email: str, password: str, now: datetime | None = None) -> User:
        """
        Verify credentials, apply a due quota reset and stamp last_login.

        Raises:
            AuthenticationError: Unknown email, wrong password or deactivated account
        """
        now = now or utc_now()
        user = await self.get_by_email(email)
        if user is None:
            logger.info("login_failed", reason="unknown_email")
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not user.is_active:
            logger.info("login_failed", reason="deactivated", user_id=str(user.id))
            raise AuthenticationError(ACCOUNT_DEACTIVATED)

        if not self.verify_password(user.password_hash, password):
            logger.info("login_failed", reason="bad_password", user_id=str(user.id))
            raise AuthenticationError(INVALID_CREDENTIALS)

        await QuotaEngine(self.db).reset_if_due(user, now)

        user.last_login = now
        await self.db.commit()
        await self.db.refresh(user)

        logger.info("user_logged_in", user_id=str(user.id))
        return user

    async def upgrade(self, user: User, subscription: Subscription) -> User:
        """Change tier; max_copy_limit follows from the tier."""
        previous = user.subscription
        user.subscription = subscription.value
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(
            "subscription_changed",
            user_id=str(user.id),
            previous=previous,
            subscription=subscription.value,
            max_copy_limit=user.max_copy_limit,
        )
        return user

    def verify_password(self, password_hash: str, password: str) -> bool:
        try:
            return self.password_hasher.verify(password_hash, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False
