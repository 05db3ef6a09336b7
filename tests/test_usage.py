"""
Tests for UsageLedger.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock
from uuid import uuid4

from app.db.models import UsageEvent
from app.models.api import UsageAction
from app.services.usage import UsageLedger
from tests.factories import make_result


class TestRecord:
    async def test_appends_event(self, db_session):
        user_id, key_id = uuid4(), uuid4()

        event = await UsageLedger(db_session).record(
            user_id, key_id, UsageAction.VIEW, ip_address="198.51.100.7", user_agent="Mozilla"
        )

        assert isinstance(event, UsageEvent)
        assert event.action == "view"
        assert event.user_id == user_id
        assert event.api_key_id == key_id
        assert event.ip_address == "198.51.100.7"
        assert event.timestamp.tzinfo is not None
        db_session.add.assert_called_once_with(event)
        db_session.commit.assert_awaited_once()

    async def test_request_context_optional(self, db_session):
        event = await UsageLedger(db_session).record(uuid4(), uuid4(), UsageAction.COPY)

        assert event.ip_address is None
        assert event.user_agent is None


class TestAggregates:
    async def test_user_stats(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(rows=[("copy", 3), ("view", 7)]))

        summary = await UsageLedger(db_session).user_stats(uuid4())

        assert summary.copies == 3
        assert summary.views == 7

    async def test_user_stats_without_events(self, db_session):
        summary = await UsageLedger(db_session).user_stats(uuid4())

        assert (summary.copies, summary.views) == (0, 0)

    async def test_key_stats(self, db_session):
        copied_at = datetime(2026, 10, 18, 9, 30, tzinfo=UTC)
        viewed_at = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)
        db_session.execute = AsyncMock(
            return_value=make_result(rows=[("copy", 2, copied_at), ("view", 11, viewed_at)])
        )
        key_id = uuid4()

        stats = await UsageLedger(db_session).key_stats(key_id)

        assert stats.key_id == key_id
        assert stats.copies == 2
        assert stats.views == 11
        assert stats.last_copied_at == copied_at
        assert stats.last_viewed_at == viewed_at

    async def test_key_stats_views_only(self, db_session):
        viewed_at = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)
        db_session.execute = AsyncMock(return_value=make_result(rows=[("view", 1, viewed_at)]))

        stats = await UsageLedger(db_session).key_stats(uuid4())

        assert stats.copies == 0
        assert stats.last_copied_at is None

    async def test_count(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalar_one=42))

        assert await UsageLedger(db_session).count(UsageAction.COPY) == 42
