"""
Expiration notification processing.

Delivery is pluggable; a notification is only marked sent after the
notifier accepted it, so a failed send is retried on the next run.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Iterable
from typing import Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from siteaccess.core.errors import InvalidStateError
from siteaccess.models.project import Project
from siteaccess.schemas.expiration import ExpirationWarning, NotificationBatchResult
from siteaccess.services.expiration import ExpirationService

log = structlog.get_logger()


class ExpirationNotifier(Protocol):
    async def send(self, warning: ExpirationWarning) -> None: ...


class LoggingNotifier:
    """Emits a structured log event per notification."""

    async def send(self, warning: ExpirationWarning) -> None:
        log.info(
            "expiration.notification",
            user_id=str(warning.user_id),
            project_id=str(warning.project_id),
            type=warning.notification_type.value,
            days=warning.days_until_expiration,
            expires_at=warning.expires_at.isoformat(),
        )


async def process_expiration_notifications(
    session: AsyncSession,
    expiration: ExpirationService,
    notifier: ExpirationNotifier,
    project_ids: Iterable[uuid.UUID] | None = None,
) -> NotificationBatchResult:
    """Send every due notification across projects and record what was sent."""
    result = NotificationBatchResult()
    if project_ids is None:
        project_ids = (await session.execute(select(Project.id))).scalars().all()

    for project_id in project_ids:
        for warning in await expiration.get_memberships_requiring_notification(project_id, session):
            result.processed += 1
            try:
                await notifier.send(warning)
                await expiration.mark_notification_sent(
                    warning.user_id, warning.project_id, warning.notification_type, session
                )
            except Exception as e:
                log.error(
                    "expiration.notification_failed",
                    user_id=str(warning.user_id),
                    project_id=str(warning.project_id),
                    type=warning.notification_type.value,
                    error=str(e),
                )
                result.errors.append(f"user {warning.user_id} in project {warning.project_id}: {e}")
                continue
            kind = warning.notification_type.value
            setattr(result, kind, getattr(result, kind) + 1)

    expiration.resolver.metrics.inc("expiration_notifications_sent_total", result.sent)
    expiration.resolver.metrics.inc("expiration_notification_errors_total", len(result.errors))
    return result


class NotificationScheduler:
    """Runs notification batches one at a time."""

    def __init__(self, expiration: ExpirationService, notifier: ExpirationNotifier) -> None:
        self.expiration = expiration
        self.notifier = notifier
        self._lock = asyncio.Lock()

    @property
    def is_processing(self) -> bool:
        return self._lock.locked()

    async def run_scheduled(self, session: AsyncSession) -> NotificationBatchResult | None:
        """Scheduled entry point; skips (returns None) if a batch is already running."""
        if self._lock.locked():
            log.warning("expiration.batch_skipped", reason="already_processing")
            return None
        return await self._run(session)

    async def trigger(self, session: AsyncSession) -> NotificationBatchResult:
        """Manual entry point; refuses to overlap a running batch."""
        if self._lock.locked():
            raise InvalidStateError("Expiration notification processing already in progress")
        return await self._run(session)

    async def _run(self, session: AsyncSession) -> NotificationBatchResult:
        async with self._lock:
            started = time.monotonic()
            result = await process_expiration_notifications(session, self.expiration, self.notifier)
            log.info(
                "expiration.batch_completed",
                duration_ms=int((time.monotonic() - started) * 1000),
                processed=result.processed,
                warning=result.warning,
                final=result.final,
                expired=result.expired,
                errors=len(result.errors),
            )
            return result
