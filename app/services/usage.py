"""
Usage Ledger - Append-only record of view/copy events.

Rows reference users and keys but never mutate them.
"""

from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import UsageEvent, utc_now
from app.models.api import UsageAction
from app.models.domain import KeyUsageStats, UsageSummary

logger = get_logger(__name__)


class UsageLedger:
    """Service for usage event inserts and aggregates."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        user_id: UUID,
        api_key_id: UUID,
        action: UsageAction,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> UsageEvent:
        """Append one event and commit it."""
        event = UsageEvent(
            id=uuid4(),
            user_id=user_id,
            api_key_id=api_key_id,
            action=action.value,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=utc_now(),
        )
        self.db.add(event)
        await self.db.commit()

        logger.debug(
            "usage_recorded",
            user_id=str(user_id),
            api_key_id=str(api_key_id),
            action=action.value,
        )
        return event

    async def user_stats(self, user_id: UUID) -> UsageSummary:
        """Event counts per action for one user."""
        stmt = (
            select(UsageEvent.action, func.count(UsageEvent.id))
            .where(UsageEvent.user_id == user_id)
            .group_by(UsageEvent.action)
        )
        result = await self.db.execute(stmt)
        counts = {action: int(total) for action, total in result.all()}
        return UsageSummary(
            copies=counts.get(UsageAction.COPY.value, 0),
            views=counts.get(UsageAction.VIEW.value, 0),
        )

    async def key_stats(self, api_key_id: UUID) -> KeyUsageStats:
        """Event counts and most recent timestamp per action for one key."""
        stmt = (
            select(
                UsageEvent.action,
                func.count(UsageEvent.id),
                func.max(UsageEvent.timestamp),
            )
            .where(UsageEvent.api_key_id == api_key_id)
            .group_by(UsageEvent.action)
        )
        result = await self.db.execute(stmt)

        copies = views = 0
        last_copied_at = last_viewed_at = None
        for action, total, last_at in result.all():
            if action == UsageAction.COPY.value:
                copies, last_copied_at = int(total), last_at
            elif action == UsageAction.VIEW.value:
                views, last_viewed_at = int(total), last_at

        return KeyUsageStats(
            key_id=api_key_id,
            copies=copies,
            views=views,
            last_copied_at=last_copied_at,
            last_viewed_at=last_viewed_at,
        )

    async def count(self, action: UsageAction) -> int:
        """Global number of events for an action."""
        stmt = select(func.count(UsageEvent.id)).where(UsageEvent.action == action.value)
        result = await self.db.execute(stmt)
        return int(result.scalar_one())
