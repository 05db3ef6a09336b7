"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from app.models.api import Subscription


@dataclass(frozen=True)
class CopyLimit:
    """
    Copy ceiling for a subscription tier.

    Either Bounded(n) or Unbounded; never a numeric infinity. Persisted as
    a nullable integer column where NULL means unbounded.
    """

    ceiling: int | None

    def __post_init__(self) -> None:
        """Validate ceiling."""
        if self.ceiling is not None and self.ceiling < 0:
            raise ValueError(f"Copy ceiling cannot be negative: {self.ceiling}")

    @classmethod
    def bounded(cls, ceiling: int) -> "CopyLimit":
        return cls(ceiling=ceiling)

    @classmethod
    def unbounded(cls) -> "CopyLimit":
        return cls(ceiling=None)

    @classmethod
    def for_subscription(cls, subscription: Subscription | str) -> "CopyLimit":
        """Ceiling derived from the tier; the only way a limit is ever produced."""
        from app.config import settings

        tier = Subscription(subscription)
        if tier == Subscription.ENTERPRISE:
            return cls.unbounded()
        if tier == Subscription.PREMIUM:
            return cls.bounded(settings.premium_copy_limit)
        return cls.bounded(settings.free_copy_limit)

    @property
    def is_unbounded(self) -> bool:
        return self.ceiling is None

    def allows(self, copy_count: int) -> bool:
        """True if one more copy fits under the ceiling."""
        return self.ceiling is None or copy_count < self.ceiling

    def remaining(self, copy_count: int) -> int | None:
        """Copies left, or None when unbounded."""
        if self.ceiling is None:
            return None
        return max(self.ceiling - copy_count, 0)


def is_usable(is_active: bool, expiry_date: datetime, now: datetime) -> bool:
    """A key is usable iff it is active and not past its expiry date."""
    return is_active and now <= expiry_date


def copy_window_elapsed(last_copy_reset: datetime, now: datetime, window_days: int) -> bool:
    """True once strictly more than window_days have passed since the last reset."""
    return now - last_copy_reset > timedelta(days=window_days)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller resolved from a bearer token."""

    user_id: UUID


@dataclass(frozen=True)
class CopyGrant:
    """Outcome of a permitted copy."""

    key_id: UUID
    copy_count: int
    limit: CopyLimit
    already_copied: bool

    @property
    def granted(self) -> bool:
        return True

    @property
    def remaining(self) -> int | None:
        return self.limit.remaining(self.copy_count)


@dataclass(frozen=True)
class UsageSummary:
    """Per-action totals for one user."""

    copies: int
    views: int


@dataclass(frozen=True)
class KeyUsageStats:
    """Per-action totals and last-used timestamps for one key."""

    key_id: UUID
    copies: int
    views: int
    last_copied_at: datetime | None
    last_viewed_at: datetime | None


@dataclass(frozen=True)
class KeyChanges:
    """Partial update intent for a key record. None means unchanged."""

    api_key: str | None = None
    tool_name: str | None = None
    category: str | None = None
    details: str | None = None
    is_active: bool | None = None
    expiry_date: datetime | None = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.api_key,
                self.tool_name,
                self.category,
                self.details,
                self.is_active,
                self.expiry_date,
            )
        )


@dataclass(frozen=True)
class ResyncReport:
    """Result of a manual mirror resync pass."""

    scanned: int
    linked: int
    failed: int
