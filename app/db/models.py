"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates

from app.models.domain import CopyLimit, is_usable


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def default_expiry() -> datetime:
    """Default key expiry: configured lifetime from now."""
    from app.config import settings

    return utc_now() + timedelta(days=settings.default_key_lifetime_days)


class User(Base):
    """
    ORM model for users table.

    Holds credentials, role, subscription tier and copy-quota state.
    """

    __tablename__ = "users"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Credentials (email stored lower-cased)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)

    # Access
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    subscription: Mapped[str] = mapped_column(String(20), nullable=False, default="free")

    # Copy quota (max_copy_limit NULL = unbounded)
    copy_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_copy_limit: Mapped[int | None] = mapped_column(Integer, nullable=True, default=2)
    copied_key_ids: Mapped[list[UUID]] = mapped_column(
        ARRAY(PG_UUID(as_uuid=True)), nullable=False, default=list
    )
    last_copy_reset: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="ck_users_role"),
        CheckConstraint(
            "subscription IN ('free', 'premium', 'enterprise')", name="ck_users_subscription"
        ),
        CheckConstraint("copy_count >= 0", name="ck_users_copy_count_non_negative"),
        Index("idx_users_created_at", "created_at"),
    )

    @validates("subscription")
    def _sync_copy_limit(self, key: str, value: str) -> str:
        self.max_copy_limit = CopyLimit.for_subscription(value).ceiling
        return value

    @property
    def copy_limit(self) -> CopyLimit:
        return CopyLimit.for_subscription(self.subscription)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<User(id={self.id}, email={self.email}, role={self.role}, "
            f"subscription={self.subscription}, copies={self.copy_count})>"
        )


@event.listens_for(User, "before_insert")
@event.listens_for(User, "before_update")
def _recompute_copy_limit(mapper, connection, target: User) -> None:  # noqa: ARG001
    """max_copy_limit is always derived from subscription before persistence."""
    target.max_copy_limit = CopyLimit.for_subscription(target.subscription or "free").ceiling


class APIKeyRecord(Base):
    """
    ORM model for api_keys table.

    Shared AI tool keys published by admins. mirror_id links the row to its
    copy in the realtime mirror.
    """

    __tablename__ = "api_keys"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Key content
    api_key: Mapped[str] = mapped_column(Text, nullable=False)
    tool_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False)

    # Lifecycle
    expiry_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=default_expiry
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    copy_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Ownership
    uploaded_by_id: Mapped[UUID] = mapped_column(
        "uploaded_by",
        PG_UUID(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    uploaded_by: Mapped["User"] = relationship("User", lazy="selectin")

    # Realtime mirror correlation
    mirror_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "category IN ('Gemini', 'GPT', 'Claude', 'Bharat Cloud AI')",
            name="ck_api_keys_category",
        ),
        CheckConstraint("copy_count >= 0", name="ck_api_keys_copy_count_non_negative"),
        Index("idx_api_keys_category_active", "category", "is_active"),
        Index("idx_api_keys_expiry_date", "expiry_date"),
        Index("idx_api_keys_created_at", "created_at"),
    )

    def is_usable(self, now: datetime | None = None) -> bool:
        return is_usable(self.is_active, self.expiry_date, now or utc_now())

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utc_now()) > self.expiry_date

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<APIKeyRecord(id={self.id}, tool={self.tool_name}, "
            f"category={self.category}, active={self.is_active})>"
        )


class UsageEvent(Base):
    """
    ORM model for usage_events table.

    Append-only ledger of view/copy actions. api_key_id has no foreign key so
    deleting a key leaves its history intact.
    """

    __tablename__ = "usage_events"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # References
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    api_key_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)

    # Event
    action: Mapped[str] = mapped_column(String(10), nullable=False)

    # Request context
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamp
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("action IN ('view', 'copy')", name="ck_usage_events_action"),
        Index("idx_usage_events_user_timestamp", "user_id", "timestamp"),
        Index("idx_usage_events_key_action", "api_key_id", "action"),
        Index("idx_usage_events_timestamp", "timestamp"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<UsageEvent(id={self.id}, user_id={self.user_id}, "
            f"api_key_id={self.api_key_id}, action={self.action})>"
        )
