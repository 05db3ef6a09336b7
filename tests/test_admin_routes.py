"""
Tests for Admin API Routes.

Tests key management with mirror sync, user listing, dashboard stats and
the admin role gate.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from app.exceptions import MirrorSyncError
from tests.factories import create_key, create_user, fill_server_defaults, make_result

NEW_KEY = {
    "apiKey": "sk-ant-new-0123456789",
    "toolName": "Claude Team",
    "category": "Claude",
    "details": "Shared workspace key",
    "expiresInDays": 14,
}


@pytest.fixture
def as_admin(login_as, admin_user, override_db, override_mirror):
    """Admin caller with mocked database and mirror."""
    override_db.refresh = AsyncMock(side_effect=fill_server_defaults)
    return login_as(admin_user)


class TestAdminGate:
    """Every admin route requires the admin role."""

    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("get", "/api/admin/keys"),
            ("get", "/api/admin/users"),
            ("get", "/api/admin/stats"),
            ("post", "/api/admin/mirror/resync"),
            ("delete", f"/api/admin/keys/{uuid4()}"),
        ],
    )
    def test_regular_user_forbidden(self, client, override_db, login_as, method, path):
        login_as(create_user())

        response = getattr(client, method)(path)

        assert response.status_code == 403
        assert response.json() == {"success": False, "message": "Access denied. Admin only."}

    def test_anonymous_unauthorized(self, client, override_db):
        assert client.get("/api/admin/keys").status_code == 401

    def test_admin_rate_limit(self, client, as_admin):
        for _ in range(20):
            assert client.get("/api/admin/keys").status_code == 200

        response = client.get("/api/admin/keys")

        assert response.status_code == 429
        assert response.json()["message"] == "Too many admin operations, please slow down."
        assert "Retry-After" in response.headers


class TestCreateKey:
    """POST /api/admin/keys"""

    def test_create_and_mirror(self, client, as_admin, override_db, mirror_client):
        response = client.post("/api/admin/keys", json=NEW_KEY)

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "API key created successfully"
        assert "warning" not in body
        data = body["data"]
        assert data["apiKey"] == "sk-ant-new-0123456789"
        assert data["category"] == "Claude"
        assert data["isActive"] is True
        assert data["isUsable"] is True
        assert data["uploadedBy"] == str(as_admin.id)
        assert data["mirrorId"] == "-NmirrorId123"

        entry = mirror_client.push.await_args[0][0]
        assert entry.api_key == "sk-ant-new-0123456789"
        assert entry.record_id == data["id"]

    def test_mirror_failure_still_created(self, client, as_admin, mirror_client):
        mirror_client.push = AsyncMock(side_effect=MirrorSyncError("push", "503 Service Unavailable"))

        response = client.post("/api/admin/keys", json=NEW_KEY)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["mirrorId"] is None
        assert body["warning"] == (
            "Saved, but the realtime mirror push failed: 503 Service Unavailable"
        )

    def test_duplicate_secret(self, client, as_admin, override_db, mirror_client):
        override_db.execute = AsyncMock(return_value=make_result(scalar=uuid4()))

        response = client.post("/api/admin/keys", json=NEW_KEY)

        assert response.status_code == 400
        assert response.json()["message"] == "This API key already exists"
        mirror_client.push.assert_not_called()

    @pytest.mark.parametrize(
        "changes",
        [
            {"category": "Llama"},
            {"apiKey": ""},
            {"expiresInDays": 0},
            {"toolName": None},
        ],
    )
    def test_invalid_body(self, client, as_admin, changes):
        response = client.post("/api/admin/keys", json={**NEW_KEY, **changes})

        assert response.status_code == 400
        assert response.json()["message"] == "Please provide all required fields"


class TestUpdateKey:
    """PUT /api/admin/keys/{id}"""

    def test_partial_update_synced(self, client, as_admin, override_db, mirror_client):
        key = create_key(mirror_id="-Nlinked")
        override_db.execute = AsyncMock(return_value=make_result(scalar=key))

        response = client.put(f"/api/admin/keys/{key.id}", json={"isActive": False})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["isActive"] is False
        assert data["isUsable"] is False
        mirror_id, patch = mirror_client.update.await_args[0]
        assert mirror_id == "-Nlinked"
        assert patch.to_payload()["isActive"] is False
        assert "apiKey" not in patch.to_payload()

    def test_extend_expiry(self, client, as_admin, override_db):
        key = create_key()
        override_db.execute = AsyncMock(return_value=make_result(scalar=key))

        response = client.put(f"/api/admin/keys/{key.id}", json={"expiresInDays": 90})

        assert response.status_code == 200
        expiry = datetime.fromisoformat(response.json()["data"]["expiryDate"])
        assert (expiry - datetime.now(UTC)).days in (89, 90)

    def test_empty_update_rejected(self, client, as_admin, override_db):
        response = client.put(f"/api/admin/keys/{uuid4()}", json={})

        assert response.status_code == 400
        assert response.json()["message"] == "Please provide at least one field to update"
        override_db.execute.assert_not_called()

    def test_missing_key(self, client, as_admin):
        response = client.put(f"/api/admin/keys/{uuid4()}", json={"details": "x"})

        assert response.status_code == 404

    def test_mirror_update_failure_warns(self, client, as_admin, override_db, mirror_client):
        key = create_key(mirror_id="-Nlinked")
        override_db.execute = AsyncMock(return_value=make_result(scalar=key))
        mirror_client.update = AsyncMock(side_effect=MirrorSyncError("update", "timeout"))

        body = client.put(f"/api/admin/keys/{key.id}", json={"details": "Rotated"}).json()

        assert body["success"] is True
        assert body["data"]["details"] == "Rotated"
        assert body["warning"] == "Saved, but the realtime mirror update failed: timeout"


class TestDeleteKey:
    """DELETE /api/admin/keys/{id}"""

    def test_delete_and_retract(self, client, as_admin, override_db, mirror_client):
        key = create_key(mirror_id="-Ngone")
        override_db.execute = AsyncMock(return_value=make_result(scalar=key))

        response = client.delete(f"/api/admin/keys/{key.id}")

        assert response.status_code == 200
        assert response.json()["message"] == "API key deleted successfully"
        override_db.delete.assert_awaited_once_with(key)
        mirror_client.remove.assert_awaited_once_with("-Ngone")

    def test_missing_key(self, client, as_admin, mirror_client):
        assert client.delete(f"/api/admin/keys/{uuid4()}").status_code == 404
        mirror_client.remove.assert_not_called()


class TestListing:
    """GET /api/admin/keys and /api/admin/users"""

    def test_keys_include_secret_and_expired(self, client, as_admin, override_db):
        keys = [create_key(), create_key(expiry_date=datetime(2020, 1, 1, tzinfo=UTC))]
        override_db.execute = AsyncMock(return_value=make_result(scalars=keys))

        body = client.get("/api/admin/keys").json()

        assert body["count"] == 2
        assert body["data"][0]["apiKey"] == "sk-test-abcdef1234567890"
        assert body["data"][1]["isUsable"] is False

    def test_users_without_password_hash(self, client, as_admin, override_db):
        users = [create_user(), create_user(email="p@example.com", subscription="premium")]
        override_db.execute = AsyncMock(return_value=make_result(scalars=users))

        body = client.get("/api/admin/users").json()

        assert body["count"] == 2
        assert body["data"][1]["maxCopyLimit"] == 50
        assert all("passwordHash" not in user for user in body["data"])


class TestStats:
    """GET /api/admin/stats and /api/admin/keys/{id}/stats"""

    def test_dashboard(self, client, as_admin, override_db):
        popular = create_key(copy_count=12)
        override_db.execute = AsyncMock(
            side_effect=[
                make_result(scalar_one=7),  # users
                make_result(scalar_one=5),  # active keys
                make_result(scalar_one=4),  # usable keys
                make_result(scalar_one=30),  # copies
                make_result(scalar_one=90),  # views
                make_result(scalars=[create_user(email="new@example.com")]),
                make_result(scalars=[popular]),
            ]
        )

        response = client.get("/api/admin/stats")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalUsers"] == 7
        assert data["totalApiKeys"] == 5
        assert data["usableApiKeys"] == 4
        assert data["totalCopies"] == 30
        assert data["totalViews"] == 90
        assert data["recentUsers"][0]["email"] == "new@example.com"
        assert data["popularKeys"][0] == {
            "id": str(popular.id),
            "toolName": "Gemini Pro",
            "category": "Gemini",
            "copyCount": 12,
        }

    def test_key_stats(self, client, as_admin, override_db):
        key = create_key()
        copied_at = datetime(2026, 10, 18, 9, 30, tzinfo=UTC)
        override_db.execute = AsyncMock(
            side_effect=[
                make_result(scalar=key),
                make_result(rows=[("copy", 3, copied_at)]),
            ]
        )

        data = client.get(f"/api/admin/keys/{key.id}/stats").json()["data"]

        assert data["keyId"] == str(key.id)
        assert data["copies"] == 3
        assert data["views"] == 0
        assert data["lastViewedAt"] is None
        assert datetime.fromisoformat(data["lastCopiedAt"]) == copied_at


class TestResync:
    """POST /api/admin/mirror/resync"""

    def test_resync_reports(self, client, as_admin, override_db, mirror_client):
        override_db.execute = AsyncMock(
            return_value=make_result(scalars=[create_key(), create_key()])
        )
        mirror_client.push = AsyncMock(side_effect=["-N1", MirrorSyncError("push", "timeout")])

        body = client.post("/api/admin/mirror/resync").json()

        assert body["data"] == {"scanned": 2, "linked": 1, "failed": 1}
        assert body["warning"] == "1 of 2 keys could not be mirrored"
