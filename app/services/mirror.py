"""
Mirror Sync - Best-effort propagation of key writes to the realtime mirror.

The primary store is the source of truth. Mirror failures never change the
outcome of a primary write: they are logged, counted and returned as a
warning string the route attaches to its response.
"""

from typing import Protocol

import httpx
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from app.config import settings
from app.db.models import APIKeyRecord, utc_now
from app.exceptions import MirrorSyncError
from app.models.domain import KeyChanges, ResyncReport
from app.models.mirror import MirrorEntry, MirrorPatch, MirrorPushResult
from app.observability.metrics import metrics
from app.observability.tracing import mark_failed, mirror_span
from app.services.key_registry import KeyRegistry

logger = get_logger(__name__)

# ============================================================================
# Clients
# ============================================================================


class MirrorClient(Protocol):
    """Operations the sync layer needs from a mirror backend."""

    async def push(self, entry: MirrorEntry) -> str: ...

    async def update(self, mirror_id: str, patch: MirrorPatch) -> None: ...

    async def remove(self, mirror_id: str) -> None: ...

    async def close(self) -> None: ...


class RealtimeDatabaseMirror:
    """
    Firebase Realtime Database over its REST API.

    push   -> POST   {url}/{path}.json        returns {"name": "<child id>"}
    update -> PATCH  {url}/{path}/{id}.json
    remove -> DELETE {url}/{path}/{id}.json
    """

    def __init__(
        self,
        base_url: str,
        path: str = "apiKeys",
        auth_token: str = "",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.path = path.strip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    def _url(self, mirror_id: str | None = None) -> str:
        if mirror_id is None:
            return f"{self.base_url}/{self.path}.json"
        return f"{self.base_url}/{self.path}/{mirror_id}.json"

    def _params(self) -> dict[str, str]:
        return {"auth": self.auth_token} if self.auth_token else {}

    async def push(self, entry: MirrorEntry) -> str:
        try:
            response = await self.http_client.post(
                self._url(), params=self._params(), json=entry.to_payload()
            )
            response.raise_for_status()
            return MirrorPushResult.model_validate(response.json()).name
        except httpx.HTTPError as e:
            raise MirrorSyncError("push", str(e)) from e
        except (ValueError, PydanticValidationError) as e:
            raise MirrorSyncError("push", f"Unexpected response: {e}") from e

    async def update(self, mirror_id: str, patch: MirrorPatch) -> None:
        try:
            response = await self.http_client.patch(
                self._url(mirror_id), params=self._params(), json=patch.to_payload()
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise MirrorSyncError("update", str(e)) from e

    async def remove(self, mirror_id: str) -> None:
        try:
            response = await self.http_client.delete(self._url(mirror_id), params=self._params())
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise MirrorSyncError("remove", str(e)) from e

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


class DisabledMirror:
    """Mirror backend used when no MIRROR_URL is configured."""

    async def push(self, entry: MirrorEntry) -> str:
        raise MirrorSyncError("push", "mirror disabled")

    async def update(self, mirror_id: str, patch: MirrorPatch) -> None:
        return None

    async def remove(self, mirror_id: str) -> None:
        return None

    async def close(self) -> None:
        return None


# ============================================================================
# Sync
# ============================================================================


def entry_for(record: APIKeyRecord) -> MirrorEntry:
    return MirrorEntry(
        record_id=str(record.id),
        api_key=record.api_key,
        tool_name=record.tool_name,
        category=record.category,
        details=record.details,
        expiry_date=record.expiry_date,
        is_active=record.is_active,
        copy_count=record.copy_count,
        created_at=record.created_at,
    )


def patch_for(changes: KeyChanges) -> MirrorPatch:
    return MirrorPatch(
        api_key=changes.api_key,
        tool_name=changes.tool_name,
        category=changes.category,
        details=changes.details,
        is_active=changes.is_active,
        expiry_date=changes.expiry_date,
        updated_at=utc_now(),
    )


class MirrorSync:
    """
    Applies committed Key Registry writes to the mirror.

    Each method returns None on success (or when there is nothing to do)
    and a human-readable warning when the mirror could not be updated.
    """

    def __init__(self, client: MirrorClient, enabled: bool = True):
        self.client = client
        self.enabled = enabled

    async def created(self, registry: KeyRegistry, record: APIKeyRecord) -> str | None:
        """Push a new record and store the mirror id on it."""
        if not self.enabled:
            return None

        key_id = record.id
        with mirror_span("push", key_id) as span:
            try:
                mirror_id = await self.client.push(entry_for(record))
            except MirrorSyncError as e:
                mark_failed(span, e.message)
                return self._failed("push", record, e)

        try:
            await registry.link_mirror(key_id, mirror_id)
        except SQLAlchemyError as e:
            # Pushed but unlinked: resync will push it again
            metrics.record_mirror_operation("link", success=False)
            logger.error(
                "mirror_link_failed",
                key_id=str(key_id),
                mirror_id=mirror_id,
                error=str(e),
            )
            return "Key saved but its realtime mirror link could not be stored"

        record.mirror_id = mirror_id
        metrics.record_mirror_operation("push", success=True)
        logger.info("mirror_pushed", key_id=str(key_id), mirror_id=mirror_id)
        return None

    async def updated(self, record: APIKeyRecord, changes: KeyChanges) -> str | None:
        """Send the changed fields; records never linked are skipped."""
        if not self.enabled or not record.mirror_id:
            return None

        with mirror_span("update", record.id) as span:
            try:
                await self.client.update(record.mirror_id, patch_for(changes))
            except MirrorSyncError as e:
                mark_failed(span, e.message)
                return self._failed("update", record, e)

        metrics.record_mirror_operation("update", success=True)
        logger.info("mirror_updated", key_id=str(record.id), mirror_id=record.mirror_id)
        return None

    async def deleted(self, record: APIKeyRecord) -> str | None:
        """Retract the entry of a record already deleted from the primary store."""
        if not self.enabled or not record.mirror_id:
            return None

        with mirror_span("remove", record.id) as span:
            try:
                await self.client.remove(record.mirror_id)
            except MirrorSyncError as e:
                mark_failed(span, e.message)
                return self._failed("remove", record, e)

        metrics.record_mirror_operation("remove", success=True)
        logger.info("mirror_removed", key_id=str(record.id), mirror_id=record.mirror_id)
        return None

    async def resync(self, registry: KeyRegistry) -> ResyncReport:
        """Push and link every record that has no mirror id."""
        records = await registry.list_unlinked()
        if not self.enabled:
            logger.info("mirror_resync_skipped", reason="disabled", unlinked=len(records))
            return ResyncReport(scanned=len(records), linked=0, failed=0)

        linked = failed = 0
        for record in records:
            if await self.created(registry, record) is None:
                linked += 1
            else:
                failed += 1

        logger.info("mirror_resync_complete", scanned=len(records), linked=linked, failed=failed)
        return ResyncReport(scanned=len(records), linked=linked, failed=failed)

    def _failed(self, operation: str, record: APIKeyRecord, error: MirrorSyncError) -> str:
        metrics.record_mirror_operation(operation, success=False)
        metrics.record_error("MirrorSyncError", f"mirror_{operation}")
        logger.warning(
            f"mirror_{operation}_failed",
            key_id=str(record.id),
            mirror_id=record.mirror_id,
            error=error.message,
        )
        return f"Saved, but the realtime mirror {operation} failed: {error.message}"


# ============================================================================
# Factory
# ============================================================================

_mirror_sync: MirrorSync | None = None


def build_mirror_client() -> MirrorClient:
    if not settings.mirror_enabled:
        return DisabledMirror()
    return RealtimeDatabaseMirror(
        base_url=settings.mirror_url,
        path=settings.mirror_path,
        auth_token=settings.mirror_auth_token,
        timeout=settings.mirror_timeout_seconds,
    )


def get_mirror_sync() -> MirrorSync:
    """Process-wide MirrorSync (FastAPI dependency)."""
    global _mirror_sync
    if _mirror_sync is None:
        _mirror_sync = MirrorSync(build_mirror_client(), enabled=settings.mirror_enabled)
    return _mirror_sync


async def close_mirror_sync() -> None:
    """Release the mirror's HTTP client (for graceful shutdown)."""
    global _mirror_sync
    if _mirror_sync is not None:
        await _mirror_sync.client.close()
        _mirror_sync = None
