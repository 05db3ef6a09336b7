"""
Tests for scripts/resync_mirror.py.
"""

import importlib.util
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from app.exceptions import MirrorSyncError
from app.services.mirror import MirrorSync
from tests.factories import create_key, make_result

SCRIPT = Path(__file__).parent.parent / "scripts" / "resync_mirror.py"


@pytest.fixture
def script():
    spec = importlib.util.spec_from_file_location("resync_mirror", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def patched(script, db_session, mirror_sync):
    @asynccontextmanager
    async def session():
        yield db_session

    with (
        patch.object(script, "get_session", session),
        patch.object(script, "get_mirror_sync", return_value=mirror_sync),
        patch.object(script, "close_mirror_sync", AsyncMock()) as close_mirror,
        patch.object(script, "close_engine", AsyncMock()) as close_engine,
    ):
        yield close_mirror, close_engine


class TestResync:
    async def test_links_unlinked_keys(self, script, patched, db_session, mirror_client):
        db_session.execute = AsyncMock(return_value=make_result(scalars=[create_key()]))

        assert await script.resync(dry_run=False) is True

        mirror_client.push.assert_awaited_once()
        close_mirror, close_engine = patched
        close_mirror.assert_awaited_once()
        close_engine.assert_awaited_once()

    async def test_failure_reported(self, script, patched, db_session, mirror_client):
        db_session.execute = AsyncMock(return_value=make_result(scalars=[create_key()]))
        mirror_client.push = AsyncMock(side_effect=MirrorSyncError("push", "timeout"))

        assert await script.resync(dry_run=False) is False

    async def test_dry_run_pushes_nothing(self, script, patched, db_session, mirror_client):
        db_session.execute = AsyncMock(return_value=make_result(scalars=[create_key()]))

        assert await script.resync(dry_run=True) is True

        mirror_client.push.assert_not_called()

    async def test_disabled_mirror(self, script, mirror_client):
        with patch.object(
            script, "get_mirror_sync", return_value=MirrorSync(mirror_client, enabled=False)
        ):
            assert await script.resync(dry_run=False) is False
