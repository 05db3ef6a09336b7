"""
Admin API routes for managing keys, users and the realtime mirror.

Protected by bearer token authentication; every route requires the admin role.
Key writes are dual-written: primary store first, then the mirror.
"""

from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.api.dependencies import rate_limit, require_admin
from app.db.models import APIKeyRecord, User, utc_now
from app.db.session import get_db
from app.exceptions import ValidationError
from app.models.api import (
    AdminKeyResponse,
    AdminUserResponse,
    ApiResponse,
    DashboardStats,
    KeyCreateRequest,
    KeyStatsData,
    KeyUpdateRequest,
    PopularKey,
    RecentUser,
    ResyncData,
    UsageAction,
)
from app.models.domain import KeyChanges
from app.services.key_registry import KeyRegistry
from app.services.mirror import MirrorSync, get_mirror_sync
from app.services.usage import UsageLedger
from app.services.users import CredentialStore

logger = get_logger(__name__)
router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin), Depends(rate_limit("admin"))],
)


def admin_key(record: APIKeyRecord) -> AdminKeyResponse:
    return AdminKeyResponse(
        id=record.id,
        api_key=record.api_key,
        tool_name=record.tool_name,
        category=record.category,
        details=record.details,
        expiry_date=record.expiry_date,
        is_active=record.is_active,
        is_usable=record.is_usable(),
        copy_count=record.copy_count,
        uploaded_by=record.uploaded_by_id,
        mirror_id=record.mirror_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def changes_from(request: KeyUpdateRequest) -> KeyChanges:
    expiry_date = None
    if request.expires_in_days is not None:
        expiry_date = utc_now() + timedelta(days=request.expires_in_days)
    return KeyChanges(
        api_key=request.api_key,
        tool_name=request.tool_name,
        category=request.category.value if request.category is not None else None,
        details=request.details,
        is_active=request.is_active,
        expiry_date=expiry_date,
    )


# ============================================================================
# Keys
# ============================================================================


@router.get("/keys", response_model=ApiResponse[list[AdminKeyResponse]])
async def list_all_keys(db: AsyncSession = Depends(get_db)) -> ApiResponse[list[AdminKeyResponse]]:
    """Every key record, expired and inactive included."""
    records = await KeyRegistry(db).list_all()
    return ApiResponse[list[AdminKeyResponse]](
        success=True,
        count=len(records),
        data=[admin_key(record) for record in records],
    )


@router.post(
    "/keys",
    response_model=ApiResponse[AdminKeyResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_key(
    request: KeyCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    mirror: MirrorSync = Depends(get_mirror_sync),
) -> ApiResponse[AdminKeyResponse]:
    """Publish a key and push it to the realtime mirror."""
    registry = KeyRegistry(db)
    record = await registry.create_key(
        api_key=request.api_key,
        tool_name=request.tool_name,
        category=request.category,
        details=request.details,
        uploaded_by=admin.id,
        expires_in_days=request.expires_in_days,
    )
    warning = await mirror.created(registry, record)
    return ApiResponse[AdminKeyResponse](
        success=True,
        message="API key created successfully",
        data=admin_key(record),
        warning=warning,
    )


@router.put("/keys/{key_id}", response_model=ApiResponse[AdminKeyResponse])
async def update_key(
    key_id: UUID,
    request: KeyUpdateRequest,
    db: AsyncSession = Depends(get_db),
    mirror: MirrorSync = Depends(get_mirror_sync),
) -> ApiResponse[AdminKeyResponse]:
    """Partial update; only supplied fields change, here and in the mirror."""
    changes = changes_from(request)
    if changes.is_empty():
        raise ValidationError("Please provide at least one field to update")

    record = await KeyRegistry(db).update_key(key_id, changes)
    warning = await mirror.updated(record, changes)
    return ApiResponse[AdminKeyResponse](
        success=True,
        message="API key updated successfully",
        data=admin_key(record),
        warning=warning,
    )


@router.delete("/keys/{key_id}", response_model=ApiResponse[None])
async def delete_key(
    key_id: UUID,
    db: AsyncSession = Depends(get_db),
    mirror: MirrorSync = Depends(get_mirror_sync),
) -> ApiResponse[None]:
    """Delete from the primary store, then retract the mirror entry."""
    record = await KeyRegistry(db).delete_key(key_id)
    warning = await mirror.deleted(record)
    return ApiResponse[None](
        success=True,
        message="API key deleted successfully",
        warning=warning,
    )


@router.get("/keys/{key_id}/stats", response_model=ApiResponse[KeyStatsData])
async def key_stats(key_id: UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[KeyStatsData]:
    """View/copy totals and last-used timestamps for one key."""
    record = await KeyRegistry(db).get(key_id)
    stats = await UsageLedger(db).key_stats(record.id)
    return ApiResponse[KeyStatsData](
        success=True,
        data=KeyStatsData(
            key_id=stats.key_id,
            copies=stats.copies,
            views=stats.views,
            last_copied_at=stats.last_copied_at,
            last_viewed_at=stats.last_viewed_at,
        ),
    )


# ============================================================================
# Mirror
# ============================================================================


@router.post("/mirror/resync", response_model=ApiResponse[ResyncData])
async def resync_mirror(
    db: AsyncSession = Depends(get_db),
    mirror: MirrorSync = Depends(get_mirror_sync),
) -> ApiResponse[ResyncData]:
    """Push every key that has no mirror id yet."""
    report = await mirror.resync(KeyRegistry(db))
    warning = None
    if report.failed:
        warning = f"{report.failed} of {report.scanned} keys could not be mirrored"
    return ApiResponse[ResyncData](
        success=True,
        message="Mirror resync complete",
        data=ResyncData(scanned=report.scanned, linked=report.linked, failed=report.failed),
        warning=warning,
    )


# ============================================================================
# Users & Stats
# ============================================================================


@router.get("/users", response_model=ApiResponse[list[AdminUserResponse]])
async def list_users(db: AsyncSession = Depends(get_db)) -> ApiResponse[list[AdminUserResponse]]:
    """All users, newest first, without password hashes."""
    users = await CredentialStore(db).list_users()
    return ApiResponse[list[AdminUserResponse]](
        success=True,
        count=len(users),
        data=[AdminUserResponse.model_validate(user) for user in users],
    )


@router.get("/stats", response_model=ApiResponse[DashboardStats])
async def dashboard_stats(db: AsyncSession = Depends(get_db)) -> ApiResponse[DashboardStats]:
    """Totals, five newest users and five most-copied keys."""
    users = CredentialStore(db)
    registry = KeyRegistry(db)
    ledger = UsageLedger(db)

    stats = DashboardStats(
        total_users=await users.count(),
        total_api_keys=await registry.count_active(),
        usable_api_keys=await registry.count_usable(),
        total_copies=await ledger.count(UsageAction.COPY),
        total_views=await ledger.count(UsageAction.VIEW),
        recent_users=[RecentUser.model_validate(user) for user in await users.recent(5)],
        popular_keys=[PopularKey.model_validate(key) for key in await registry.popular(5)],
    )
    return ApiResponse[DashboardStats](success=True, data=stats)
