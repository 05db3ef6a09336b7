"""
Key Registry - Persistence and expiry-aware queries for shared API keys.

Every public read path applies the same usability predicate
(active and not past expiry) at access time.

NO DICTIONARIES - All data uses typed models/dataclasses.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import APIKeyRecord, default_expiry, utc_now
from app.exceptions import ConflictError, KeyExpiredError, ResourceNotFoundError
from app.models.api import ALL_CATEGORIES, KeyCategory
from app.models.domain import KeyChanges

logger = get_logger(__name__)

RESOURCE = "API key"


def expiry_from_days(expires_in_days: int | None, now: datetime | None = None) -> datetime:
    """Expiry timestamp for a lifetime in days; None means the default lifetime."""
    if expires_in_days is None:
        return default_expiry()
    return (now or utc_now()) + timedelta(days=expires_in_days)


def mask_secret(secret: str) -> str:
    """Preview of a key value safe to show without a copy."""
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}{'*' * 8}{secret[-4:]}"


class KeyRegistry:
    """Service for API key records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # Public read path
    # ========================================================================

    async def list_usable(
        self, category: str | None = None, now: datetime | None = None
    ) -> Sequence[APIKeyRecord]:
        """
        Usable keys, newest first.

        Args:
            category: Exact category name; None or "all" (any case) lists every category
        """
        now = now or utc_now()
        stmt = select(APIKeyRecord).where(
            APIKeyRecord.is_active.is_(True),
            APIKeyRecord.expiry_date >= now,
        )
        if category and category.strip().lower() != ALL_CATEGORIES:
            stmt = stmt.where(APIKeyRecord.category == category.strip())
        stmt = stmt.order_by(APIKeyRecord.created_at.desc())

        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def get_usable(self, key_id: UUID, now: datetime | None = None) -> APIKeyRecord:
        """
        Fetch a key for public use.

        Raises:
            ResourceNotFoundError: Missing or deactivated
            KeyExpiredError: Past its expiry date
        """
        now = now or utc_now()
        key = await self.find(key_id)
        if key is None or not key.is_active:
            raise ResourceNotFoundError(RESOURCE, key_id)
        if key.is_expired(now):
            raise KeyExpiredError(key.id)
        return key

    # ========================================================================
    # Admin path
    # ========================================================================

    async def find(self, key_id: UUID) -> APIKeyRecord | None:
        result = await self.db.execute(select(APIKeyRecord).where(APIKeyRecord.id == key_id))
        return result.scalar_one_or_none()

    async def get(self, key_id: UUID) -> APIKeyRecord:
        """Fetch regardless of usability; ResourceNotFoundError if missing."""
        key = await self.find(key_id)
        if key is None:
            raise ResourceNotFoundError(RESOURCE, key_id)
        return key

    async def list_all(self) -> Sequence[APIKeyRecord]:
        """Every record, expired and inactive included, newest first."""
        result = await self.db.execute(
            select(APIKeyRecord).order_by(APIKeyRecord.created_at.desc())
        )
        return result.scalars().all()

    async def list_unlinked(self) -> Sequence[APIKeyRecord]:
        """Records that never received a mirror id."""
        stmt = (
            select(APIKeyRecord)
            .where(APIKeyRecord.mirror_id.is_(None))
            .order_by(APIKeyRecord.created_at.asc())
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def create_key(
        self,
        api_key: str,
        tool_name: str,
        category: KeyCategory,
        details: str,
        uploaded_by: UUID,
        expires_in_days: int | None = None,
    ) -> APIKeyRecord:
        """
        Insert a new key record.

        Raises:
            ConflictError: The same secret is already registered
        """
        api_key = api_key.strip()
        await self._ensure_unique(api_key)

        record = APIKeyRecord(
            id=uuid4(),
            api_key=api_key,
            tool_name=tool_name.strip(),
            category=category.value,
            details=details.strip(),
            expiry_date=expiry_from_days(expires_in_days),
            is_active=True,
            copy_count=0,
            uploaded_by_id=uploaded_by,
        )
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)

        logger.info(
            "api_key_created",
            key_id=str(record.id),
            tool_name=record.tool_name,
            category=record.category,
            uploaded_by=str(uploaded_by),
        )
        return record

    async def update_key(self, key_id: UUID, changes: KeyChanges) -> APIKeyRecord:
        """
        Apply a partial update; fields left as None are untouched.

        Raises:
            ResourceNotFoundError: Missing
            ConflictError: New secret collides with another record
        """
        record = await self.get(key_id)

        if changes.api_key is not None and changes.api_key != record.api_key:
            await self._ensure_unique(changes.api_key, exclude_id=record.id)
            record.api_key = changes.api_key
        if changes.tool_name is not None:
            record.tool_name = changes.tool_name
        if changes.category is not None:
            record.category = changes.category
        if changes.details is not None:
            record.details = changes.details
        if changes.is_active is not None:
            record.is_active = changes.is_active
        if changes.expiry_date is not None:
            record.expiry_date = changes.expiry_date

        await self.db.commit()
        await self.db.refresh(record)

        logger.info("api_key_updated", key_id=str(record.id), is_active=record.is_active)
        return record

    async def delete_key(self, key_id: UUID) -> APIKeyRecord:
        """Remove the record; the returned instance still carries its mirror_id."""
        record = await self.get(key_id)
        await self.db.delete(record)
        await self.db.commit()

        logger.info("api_key_deleted", key_id=str(key_id), mirror_id=record.mirror_id)
        return record

    async def link_mirror(self, key_id: UUID, mirror_id: str) -> None:
        """
        Store the mirror's id on the primary record.

        Runs in a SAVEPOINT: a failure rolls back only this statement and
        leaves the caller's loaded records usable.
        """
        stmt = (
            update(APIKeyRecord)
            .where(APIKeyRecord.id == key_id)
            .values(mirror_id=mirror_id)
            .execution_options(synchronize_session=False)
        )
        async with self.db.begin_nested():
            await self.db.execute(stmt)
        await self.db.commit()

    # ========================================================================
    # Aggregates
    # ========================================================================

    async def count_active(self) -> int:
        stmt = select(func.count(APIKeyRecord.id)).where(APIKeyRecord.is_active.is_(True))
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def count_usable(self, now: datetime | None = None) -> int:
        stmt = select(func.count(APIKeyRecord.id)).where(
            APIKeyRecord.is_active.is_(True),
            APIKeyRecord.expiry_date >= (now or utc_now()),
        )
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def popular(self, limit: int = 5) -> Sequence[APIKeyRecord]:
        """Active keys with the most copies."""
        stmt = (
            select(APIKeyRecord)
            .where(APIKeyRecord.is_active.is_(True))
            .order_by(APIKeyRecord.copy_count.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def _ensure_unique(self, api_key: str, exclude_id: UUID | None = None) -> None:
        stmt = select(APIKeyRecord.id).where(APIKeyRecord.api_key == api_key)
        if exclude_id is not None:
            stmt = stmt.where(APIKeyRecord.id != exclude_id)
        result = await self.db.execute(stmt)
        if result.scalar_one_or_none() is not None:
            raise ConflictError("This API key already exists")
