"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
Wire format is camelCase; Python attributes stay snake_case.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    field_validator,
    model_serializer,
)
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")
ALL_CATEGORIES = "all"


class Role(str, Enum):
    """User role enumeration."""

    USER = "user"
    ADMIN = "admin"


class Subscription(str, Enum):
    """Subscription tier enumeration."""

    FREE = "free"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class KeyCategory(str, Enum):
    """Closed set of tool families an API key can belong to."""

    GEMINI = "Gemini"
    GPT = "GPT"
    CLAUDE = "Claude"
    BHARAT_CLOUD_AI = "Bharat Cloud AI"


class UsageAction(str, Enum):
    """Usage ledger action enumeration."""

    VIEW = "view"
    COPY = "copy"


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint."""

    success: bool
    message: str | None = None
    count: int | None = None
    data: T | None = None
    error: str | None = None
    warning: str | None = None

    @model_serializer(mode="wrap")
    def omit_empty_fields(self, handler: SerializerFunctionWrapHandler):
        """Envelope keys without a value are left out; nested nulls are kept."""
        return {key: value for key, value in handler(self).items() if value is not None}


# ============================================================================
# Auth Models
# ============================================================================


class RegisterRequest(CamelModel):
    """POST /api/auth/register request body."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Normalize to lower case and check basic shape."""
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Please provide a valid email")
        return v


class LoginRequest(CamelModel):
    """POST /api/auth/login request body."""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are matched case-insensitively."""
        return v.strip().lower()


class UpgradeRequest(CamelModel):
    """PUT /api/auth/upgrade request body."""

    subscription: Subscription


class AuthData(CamelModel):
    """Returned by register and login."""

    id: UUID
    email: str
    role: Role
    subscription: Subscription
    copy_count: int
    max_copy_limit: int | None
    token: str


class UsageCounts(CamelModel):
    """Per-action event counts."""

    copy_events: int = Field(0, alias="copy")
    view_events: int = Field(0, alias="view")


class ProfileData(CamelModel):
    """GET /api/auth/me payload."""

    id: UUID
    email: str
    role: Role
    subscription: Subscription
    copy_count: int
    max_copy_limit: int | None
    remaining_copies: int | None
    copied_key_ids: list[UUID]
    last_copy_reset: datetime
    last_login: datetime | None
    created_at: datetime
    usage: UsageCounts


class UpgradeData(CamelModel):
    """PUT /api/auth/upgrade payload."""

    subscription: Subscription
    max_copy_limit: int | None


# ============================================================================
# Key Models
# ============================================================================


class PublicKeyResponse(CamelModel):
    """Key as shown to anonymous and regular callers (secret masked)."""

    id: UUID
    tool_name: str
    category: KeyCategory
    details: str
    key_preview: str
    expiry_date: datetime
    copy_count: int
    created_at: datetime


class CopyData(CamelModel):
    """POST /api/keys/{id}/copy payload."""

    api_key: str
    tool_name: str
    copy_count: int
    max_copy_limit: int | None
    remaining_copies: int | None
    already_copied: bool


class QuotaStateData(CamelModel):
    """Quota snapshot attached to 403 copy responses."""

    copy_count: int
    max_copy_limit: int | None
    subscription: Subscription


# ============================================================================
# Admin Models
# ============================================================================


class KeyCreateRequest(CamelModel):
    """POST /api/admin/keys request body."""

    api_key: str = Field(..., min_length=1, max_length=2048)
    tool_name: str = Field(..., min_length=1, max_length=255)
    category: KeyCategory
    details: str = Field(..., min_length=1)
    expires_in_days: int | None = Field(None, ge=1, le=3650)


class KeyUpdateRequest(CamelModel):
    """PUT /api/admin/keys/{id} request body. Omitted fields are left alone."""

    api_key: str | None = Field(None, min_length=1, max_length=2048)
    tool_name: str | None = Field(None, min_length=1, max_length=255)
    category: KeyCategory | None = None
    details: str | None = Field(None, min_length=1)
    is_active: bool | None = None
    expires_in_days: int | None = Field(None, ge=1, le=3650)


class AdminKeyResponse(CamelModel):
    """Full key record, secret included."""

    id: UUID
    api_key: str
    tool_name: str
    category: KeyCategory
    details: str
    expiry_date: datetime
    is_active: bool
    is_usable: bool
    copy_count: int
    uploaded_by: UUID
    mirror_id: str | None
    created_at: datetime
    updated_at: datetime


class AdminUserResponse(CamelModel):
    """User row for the admin panel (no password hash)."""

    id: UUID
    email: str
    role: Role
    subscription: Subscription
    copy_count: int
    max_copy_limit: int | None
    is_active: bool
    last_copy_reset: datetime
    last_login: datetime | None
    created_at: datetime


class RecentUser(CamelModel):
    """Compact user entry for dashboard stats."""

    email: str
    subscription: Subscription
    created_at: datetime


class PopularKey(CamelModel):
    """Compact key entry for dashboard stats."""

    id: UUID
    tool_name: str
    category: KeyCategory
    copy_count: int


class DashboardStats(CamelModel):
    """GET /api/admin/stats payload."""

    total_users: int
    total_api_keys: int
    usable_api_keys: int
    total_copies: int
    total_views: int
    recent_users: list[RecentUser]
    popular_keys: list[PopularKey]


class KeyStatsData(CamelModel):
    """GET /api/admin/keys/{id}/stats payload."""

    key_id: UUID
    copies: int
    views: int
    last_copied_at: datetime | None
    last_viewed_at: datetime | None


class ResyncData(CamelModel):
    """POST /api/admin/mirror/resync payload."""

    scanned: int
    linked: int
    failed: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    mirror: str
    environment: str
    timestamp: str
