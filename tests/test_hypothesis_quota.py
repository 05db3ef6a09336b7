"""
Hypothesis Property-Based Tests for the copy quota.

Uses Hypothesis to generate user quota states and verify:
- CopyLimit arithmetic for every tier
- QuotaEngine decisions (repeat, reset, deny, grant) for any state
- Secret masking never reveals more than the key ends
- Request model normalization
"""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import QuotaExceededError
from app.models.api import KeyCategory, KeyCreateRequest, RegisterRequest, Subscription
from app.models.domain import CopyLimit
from app.services.key_registry import mask_secret
from app.services.quota import QuotaEngine
from tests.factories import create_key, create_user, make_result

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

# ============================================================================
# Hypothesis Strategies - Reusable data generators
# ============================================================================

subscriptions = st.sampled_from([tier.value for tier in Subscription])

copy_counts = st.integers(min_value=0, max_value=200)

# Days since the last reset, either side of the 30 day window
days_since_reset = st.one_of(
    st.integers(min_value=0, max_value=30),
    st.integers(min_value=31, max_value=400),
)

secrets = st.text(min_size=0, max_size=200)

CATEGORY_NAMES = {category.value for category in KeyCategory}


def fresh_session() -> AsyncMock:
    session = AsyncMock(spec=AsyncSession)
    session.add = MagicMock()
    session.commit = AsyncMock()
    session.refresh = AsyncMock()
    session.execute = AsyncMock(return_value=make_result())
    return session


# ============================================================================
# CopyLimit
# ============================================================================


class TestCopyLimitProperties:
    """Property-based tests for CopyLimit."""

    @given(subscriptions, copy_counts)
    @settings(max_examples=200)
    def test_allows_iff_below_ceiling(self, subscription, copy_count):
        limit = CopyLimit.for_subscription(subscription)
        if limit.is_unbounded:
            assert limit.allows(copy_count)
        else:
            assert limit.allows(copy_count) == (copy_count < limit.ceiling)

    @given(subscriptions, copy_counts)
    def test_remaining_plus_used_is_ceiling(self, subscription, copy_count):
        limit = CopyLimit.for_subscription(subscription)
        remaining = limit.remaining(copy_count)
        if limit.is_unbounded:
            assert remaining is None
        elif copy_count <= limit.ceiling:
            assert remaining + copy_count == limit.ceiling
        else:
            assert remaining == 0

    @given(st.integers(min_value=0, max_value=1000))
    def test_tiers_are_ordered(self, copy_count):
        """Anything free allows, premium allows; anything premium allows, enterprise allows."""
        free = CopyLimit.for_subscription("free")
        premium = CopyLimit.for_subscription("premium")
        enterprise = CopyLimit.for_subscription("enterprise")
        if free.allows(copy_count):
            assert premium.allows(copy_count)
        if premium.allows(copy_count):
            assert enterprise.allows(copy_count)


# ============================================================================
# QuotaEngine decisions
# ============================================================================


class TestQuotaDecisionProperties:
    """Every quota state maps to exactly one outcome."""

    @given(subscriptions, copy_counts, days_since_reset, st.booleans())
    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    def test_decision(self, subscription, copy_count, days, already_copied):
        key = create_key(expiry_date=NOW + timedelta(days=1))
        copied = [key.id] if already_copied else []
        user = create_user(
            subscription=subscription,
            copy_count=copy_count,
            copied_key_ids=copied,
            last_copy_reset=NOW - timedelta(days=days),
        )
        limit = CopyLimit.for_subscription(subscription)
        window_elapsed = days > 30

        session = fresh_session()
        effective_count = 0 if window_elapsed else copy_count
        results = []
        if window_elapsed:
            results.append(make_result(scalar=NOW))
        results.append(make_result(scalar=effective_count + 1))
        results.append(make_result(scalar=1))
        session.execute = AsyncMock(side_effect=results)

        engine = QuotaEngine(session)

        if already_copied:
            grant = asyncio.run(engine.try_consume_copy(user, key, now=NOW))
            assert grant.already_copied
            assert grant.copy_count == copy_count
            session.execute.assert_not_called()
        elif not limit.allows(effective_count):
            with pytest.raises(QuotaExceededError) as exc_info:
                asyncio.run(engine.try_consume_copy(user, key, now=NOW))
            assert exc_info.value.copy_count == effective_count
            session.add.assert_not_called()
        else:
            grant = asyncio.run(engine.try_consume_copy(user, key, now=NOW))
            assert not grant.already_copied
            assert grant.copy_count == effective_count + 1
            if not limit.is_unbounded:
                assert grant.copy_count <= limit.ceiling
            session.add.assert_called_once()

    @given(st.integers(min_value=1, max_value=10))
    @settings(max_examples=20)
    def test_free_user_sequence_never_exceeds_two(self, attempts):
        """Distinct keys copied in a row: at most two succeed."""
        user = create_user(last_copy_reset=NOW - timedelta(days=1))
        granted = 0

        for _ in range(attempts):
            session = fresh_session()
            session.execute = AsyncMock(
                side_effect=[make_result(scalar=user.copy_count + 1), make_result(scalar=1)]
            )
            key = create_key(expiry_date=NOW + timedelta(days=1))
            try:
                grant = asyncio.run(QuotaEngine(session).try_consume_copy(user, key, now=NOW))
            except QuotaExceededError:
                continue
            granted += 1
            user.copy_count = grant.copy_count
            user.copied_key_ids = [*user.copied_key_ids, key.id]

        assert granted == min(attempts, 2)
        assert user.copy_count == granted


# ============================================================================
# Masking and request models
# ============================================================================


class TestMaskingProperties:
    @given(secrets)
    @settings(max_examples=200)
    def test_reveals_at_most_eight_characters(self, secret):
        masked = mask_secret(secret)
        if len(secret) <= 8:
            assert masked == "*" * len(secret)
        else:
            assert masked[:4] == secret[:4]
            assert masked[-4:] == secret[-4:]
            assert masked[4:-4] == "*" * 8


class TestRequestModelProperties:
    @given(st.emails())
    @settings(max_examples=100)
    def test_register_email_lowercased(self, email):
        request = RegisterRequest(email=email.upper(), password="hunter22")
        assert request.email == email.lower()

    @given(st.text(min_size=1, max_size=30).filter(lambda c: c.strip() not in CATEGORY_NAMES))
    def test_unknown_category_rejected(self, category):
        with pytest.raises(ValidationError):
            KeyCreateRequest(api_key="sk-x", tool_name="Tool", category=category, details="d")

