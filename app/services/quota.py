"""
Quota Engine - Subscription-tiered copy quota enforcement.

Decides whether a user may copy a key and commits the outcome in order:
user quota, then key counter, then usage event. Every user mutation is a
single guarded UPDATE so concurrent copies cannot exceed the ceiling.

NO DICTIONARIES - All data uses typed models/dataclasses.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import any_, func, not_, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.models import APIKeyRecord, User, utc_now
from app.exceptions import KeyExpiredError, KeyUnavailableError, QuotaExceededError
from app.models.api import UsageAction
from app.models.domain import CopyGrant, CopyLimit, copy_window_elapsed
from app.observability.metrics import metrics
from app.services.usage import UsageLedger

logger = get_logger(__name__)


class QuotaEngine:
    """Copy quota decisions and their persistence."""

    def __init__(self, db: AsyncSession, window_days: int | None = None):
        self.db = db
        self.window_days = window_days if window_days is not None else settings.copy_window_days

    async def try_consume_copy(
        self,
        user: User,
        key: APIKeyRecord,
        ip_address: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> CopyGrant:
        """
        Grant a copy of key to user or refuse it.

        Order of checks:
        1. Key already in the user's copied set -> grant, nothing changes
        2. Window elapsed -> reset count and copied set
        3. Count at ceiling -> QuotaExceededError
        4. Commit user quota, key counter, usage event

        Raises:
            KeyExpiredError: Key is past its expiry date
            KeyUnavailableError: Key is deactivated
            QuotaExceededError: No copies left in the current window
        """
        now = now or utc_now()

        if not key.is_usable(now):
            if key.is_expired(now):
                raise KeyExpiredError(key.id)
            raise KeyUnavailableError(key.id)

        limit = CopyLimit.for_subscription(user.subscription)
        copy_count = user.copy_count
        copied_key_ids = list(user.copied_key_ids or [])

        # Step 1: idempotent re-copy
        if key.id in copied_key_ids:
            metrics.record_copy("repeat", user.subscription)
            logger.info("api_key_recopied", user_id=str(user.id), key_id=str(key.id))
            return CopyGrant(key_id=key.id, copy_count=copy_count, limit=limit, already_copied=True)

        # Step 2: periodic reset
        if copy_window_elapsed(user.last_copy_reset, now, self.window_days):
            if await self._reset_window(user.id, user.last_copy_reset, now):
                copy_count = 0
            else:
                # Another request moved the window first
                await self.db.refresh(user)
                copy_count = user.copy_count

        # Step 3: limit check
        if not limit.allows(copy_count):
            raise self._denied(user, copy_count, limit)

        # Step 4a: user quota
        new_count = await self._commit_user_copy(user.id, key.id, limit)
        if new_count is None:
            await self.db.refresh(user)
            if key.id in (user.copied_key_ids or []):
                metrics.record_copy("repeat", user.subscription)
                return CopyGrant(
                    key_id=key.id, copy_count=user.copy_count, limit=limit, already_copied=True
                )
            raise self._denied(user, user.copy_count, limit)

        # Step 4b: key counter
        await self._increment_key(key.id)

        # Step 4c: usage event
        await UsageLedger(self.db).record(
            user_id=user.id,
            api_key_id=key.id,
            action=UsageAction.COPY,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        await self.db.refresh(user)

        metrics.record_copy("granted", user.subscription)
        logger.info(
            "api_key_copied",
            user_id=str(user.id),
            key_id=str(key.id),
            copy_count=new_count,
            max_copy_limit=limit.ceiling,
        )
        return CopyGrant(key_id=key.id, copy_count=new_count, limit=limit, already_copied=False)

    async def reset_if_due(self, user: User, now: datetime | None = None) -> bool:
        """Apply the periodic reset outside a copy (used at login)."""
        now = now or utc_now()
        if not copy_window_elapsed(user.last_copy_reset, now, self.window_days):
            return False

        applied = await self._reset_window(user.id, user.last_copy_reset, now)
        await self.db.refresh(user)
        return applied

    # ========================================================================
    # Guarded statements
    # ========================================================================

    async def _reset_window(self, user_id: UUID, previous_reset: datetime, now: datetime) -> bool:
        """Reset quota state only if last_copy_reset is still what we read."""
        stmt = (
            update(User)
            .where(User.id == user_id, User.last_copy_reset == previous_reset)
            .values(copy_count=0, copied_key_ids=[], last_copy_reset=now, updated_at=now)
            .returning(User.last_copy_reset)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        applied = result.scalar_one_or_none() is not None
        await self.db.commit()

        if applied:
            metrics.quota_resets_total.inc()
            logger.info("copy_window_reset", user_id=str(user_id), previous_reset=str(previous_reset))
        return applied

    async def _commit_user_copy(self, user_id: UUID, key_id: UUID, limit: CopyLimit) -> int | None:
        """
        Increment copy_count and append key_id in one statement.

        Matches no row when the ceiling was reached or the key was already
        added by a concurrent request; returns the new count otherwise.
        """
        conditions = [User.id == user_id, not_(key_id == any_(User.copied_key_ids))]
        if limit.ceiling is not None:
            conditions.append(User.copy_count < limit.ceiling)

        stmt = (
            update(User)
            .where(*conditions)
            .values(
                copy_count=User.copy_count + 1,
                copied_key_ids=func.array_append(User.copied_key_ids, key_id),
                updated_at=utc_now(),
            )
            .returning(User.copy_count)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        new_count = result.scalar_one_or_none()
        await self.db.commit()
        return new_count

    async def _increment_key(self, key_id: UUID) -> None:
        stmt = (
            update(APIKeyRecord)
            .where(APIKeyRecord.id == key_id)
            .values(copy_count=APIKeyRecord.copy_count + 1)
            .returning(APIKeyRecord.copy_count)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.scalar_one_or_none() is None:
            logger.warning("api_key_counter_missed", key_id=str(key_id))
        await self.db.commit()

    def _denied(self, user: User, copy_count: int, limit: CopyLimit) -> QuotaExceededError:
        metrics.record_copy("denied", user.subscription)
        logger.info(
            "copy_quota_exceeded",
            user_id=str(user.id),
            copy_count=copy_count,
            max_copy_limit=limit.ceiling,
            subscription=user.subscription,
        )
        return QuotaExceededError(
            copy_count=copy_count,
            max_copy_limit=limit.ceiling or 0,
            subscription=user.subscription,
        )
