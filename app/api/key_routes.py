"""
Key Routes - Public catalogue of shared API keys and the quota-gated copy.

Public reads never expose the secret; it is released only through a
granted copy.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    client_ip,
    get_current_user,
    get_optional_user,
    rate_limit,
    user_agent,
)
from app.db.models import APIKeyRecord, User
from app.db.session import get_db
from app.models.api import ApiResponse, CopyData, PublicKeyResponse, UsageAction
from app.services.key_registry import KeyRegistry, mask_secret
from app.services.quota import QuotaEngine
from app.services.usage import UsageLedger

router = APIRouter(prefix="/api/keys", tags=["keys"])

general_limit = Depends(rate_limit("general"))


def public_key(record: APIKeyRecord) -> PublicKeyResponse:
    return PublicKeyResponse(
        id=record.id,
        tool_name=record.tool_name,
        category=record.category,
        details=record.details,
        key_preview=mask_secret(record.api_key),
        expiry_date=record.expiry_date,
        copy_count=record.copy_count,
        created_at=record.created_at,
    )


@router.get("", response_model=ApiResponse[list[PublicKeyResponse]], dependencies=[general_limit])
async def list_keys(
    category: str | None = Query(None, description="Category name, or 'all'"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[PublicKeyResponse]]:
    """Usable keys, newest first."""
    records = await KeyRegistry(db).list_usable(category)
    return ApiResponse[list[PublicKeyResponse]](
        success=True,
        count=len(records),
        data=[public_key(record) for record in records],
    )


@router.get(
    "/{key_id}", response_model=ApiResponse[PublicKeyResponse], dependencies=[general_limit]
)
async def get_key(
    key_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PublicKeyResponse]:
    """One usable key; 404 when missing or deactivated, 410 when expired."""
    record = await KeyRegistry(db).get_usable(key_id)
    return ApiResponse[PublicKeyResponse](success=True, data=public_key(record))


@router.post(
    "/{key_id}/copy",
    response_model=ApiResponse[CopyData],
    dependencies=[Depends(get_current_user), Depends(rate_limit("copy", by_user=True))],
)
async def copy_key(
    key_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CopyData]:
    """
    Release the secret if the caller's quota allows it.

    Copying a key already in the caller's copied set succeeds without
    consuming quota.
    """
    record = await KeyRegistry(db).get_usable(key_id)
    grant = await QuotaEngine(db).try_consume_copy(
        user,
        record,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )
    return ApiResponse[CopyData](
        success=True,
        message="API key already copied" if grant.already_copied else "API key copied successfully",
        data=CopyData(
            api_key=record.api_key,
            tool_name=record.tool_name,
            copy_count=grant.copy_count,
            max_copy_limit=grant.limit.ceiling,
            remaining_copies=grant.remaining,
            already_copied=grant.already_copied,
        ),
    )


@router.post("/{key_id}/view", response_model=ApiResponse[None], dependencies=[general_limit])
async def track_view(
    key_id: UUID,
    request: Request,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[None]:
    """Record a view for identified callers; anonymous views are not logged."""
    record = await KeyRegistry(db).get(key_id)
    if user is not None:
        await UsageLedger(db).record(
            user_id=user.id,
            api_key_id=record.id,
            action=UsageAction.VIEW,
            ip_address=client_ip(request),
            user_agent=user_agent(request),
        )
    return ApiResponse[None](success=True, message="View tracked")
