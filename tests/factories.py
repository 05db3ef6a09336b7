"""
Test factories - Transient ORM rows and mock query results.

Shared by conftest fixtures and test modules.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock
from uuid import UUID, uuid4

from app.db.models import APIKeyRecord, User


def make_result(
    scalar: Any = None,
    scalars: list | None = None,
    rows: list | None = None,
    scalar_one: Any = 0,
) -> MagicMock:
    """Build a mock Result for one execute() call."""
    result = MagicMock()
    result.scalar_one_or_none = MagicMock(return_value=scalar)
    result.scalar_one = MagicMock(return_value=scalar_one)
    result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=scalars or [])))
    result.all = MagicMock(return_value=rows or [])
    return result


def create_user(
    user_id: UUID | None = None,
    email: str = "user@example.com",
    role: str = "user",
    subscription: str = "free",
    copy_count: int = 0,
    copied_key_ids: list[UUID] | None = None,
    last_copy_reset: datetime | None = None,
    is_active: bool = True,
    password_hash: str = "$argon2id$placeholder",
) -> User:
    """Factory for transient User rows."""
    now = datetime.now(UTC)
    return User(
        id=user_id or uuid4(),
        email=email,
        password_hash=password_hash,
        role=role,
        subscription=subscription,
        copy_count=copy_count,
        copied_key_ids=list(copied_key_ids or []),
        last_copy_reset=last_copy_reset or now - timedelta(days=1),
        is_active=is_active,
        last_login=None,
        created_at=now - timedelta(days=10),
        updated_at=now,
    )


def create_key(
    key_id: UUID | None = None,
    api_key: str = "sk-test-abcdef1234567890",
    tool_name: str = "Gemini Pro",
    category: str = "Gemini",
    details: str = "Shared team key",
    expiry_date: datetime | None = None,
    is_active: bool = True,
    copy_count: int = 0,
    uploaded_by: UUID | None = None,
    mirror_id: str | None = None,
) -> APIKeyRecord:
    """Factory for transient APIKeyRecord rows."""
    now = datetime.now(UTC)
    return APIKeyRecord(
        id=key_id or uuid4(),
        api_key=api_key,
        tool_name=tool_name,
        category=category,
        details=details,
        expiry_date=expiry_date or now + timedelta(days=30),
        is_active=is_active,
        copy_count=copy_count,
        uploaded_by_id=uploaded_by or uuid4(),
        mirror_id=mirror_id,
        created_at=now - timedelta(days=1),
        updated_at=now,
    )


async def fill_server_defaults(instance: Any) -> None:
    """Stand-in for session.refresh after INSERT: populate audit timestamps."""
    now = datetime.now(UTC)
    if getattr(instance, "created_at", None) is None:
        instance.created_at = now
    if getattr(instance, "updated_at", None) is None:
        instance.updated_at = now
