"""
ARQ background task: send due membership expiration notifications.

Scheduled to run periodically (daily at 09:00 by default).
"""

from __future__ import annotations

import structlog

from siteaccess.core.config import get_settings
from siteaccess.core.database import dispose_engine, get_session_context, init_db
from siteaccess.core.logging import configure_logging
from siteaccess.core.redis import close_redis
from siteaccess.schemas.expiration import NotificationBatchResult
from siteaccess.services.engine import AccessEngine
from siteaccess.services.notifications import LoggingNotifier, NotificationScheduler

log = structlog.get_logger()


async def startup(ctx: dict) -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    if settings.debug:
        await init_db()
    engine = await AccessEngine.from_settings(settings)
    ctx["engine"] = engine
    ctx["scheduler"] = NotificationScheduler(engine.expiration, LoggingNotifier())


async def shutdown(ctx: dict) -> None:
    await close_redis()
    await dispose_engine()


async def scan_expiring_memberships(ctx: dict) -> NotificationBatchResult | None:
    """Run one notification batch. Returns None when a batch is already running."""
    if "scheduler" not in ctx:
        await startup(ctx)
    scheduler: NotificationScheduler = ctx["scheduler"]

    async with get_session_context() as session:
        result = await scheduler.run_scheduled(session)

    if result is not None and result.errors:
        log.warning("expiration.batch_errors", count=len(result.errors))
    return result


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [scan_expiring_memberships]
    on_startup = startup
    on_shutdown = shutdown
    cron_jobs = [
        {
            "coroutine": scan_expiring_memberships,
            "hour": 9,
            "minute": 0,
        },
    ]
