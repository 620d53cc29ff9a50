"""Tests for the scheduled expiration notification task."""

from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import AsyncMock

from siteaccess.schemas.roles import ProjectRole
from siteaccess.services.notifications import NotificationScheduler
from siteaccess.tasks import expiration_notifications as task
from tests.conftest import NOW


async def test_scan_runs_one_batch(monkeypatch, access, factory, session, org, project):
    user = await factory.user()
    await factory.org_member(user, org)
    await factory.project_member(user, project, ProjectRole.VIEWER, expires_at=NOW + timedelta(days=2))

    @asynccontextmanager
    async def session_context():
        yield session

    monkeypatch.setattr(task, "get_session_context", session_context)
    notifier = AsyncMock()
    ctx = {"scheduler": NotificationScheduler(access.expiration, notifier)}

    result = await task.scan_expiring_memberships(ctx)

    assert result.warning == 1
    notifier.send.assert_awaited_once()


def test_worker_settings():
    assert task.scan_expiring_memberships in task.WorkerSettings.functions
    cron = task.WorkerSettings.cron_jobs[0]
    assert cron["coroutine"] is task.scan_expiring_memberships
    assert (cron["hour"], cron["minute"]) == (9, 0)


async def test_shutdown_without_connections():
    await task.shutdown({})
    assert task.WorkerSettings.on_shutdown is task.shutdown
