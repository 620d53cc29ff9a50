"""
Membership expiration and renewal workflow.

Reads go through the resolver so inherited access always reports
NO_EXPIRATION. Every write that touches ``expires_at`` invalidates the
(user, project) cache entry once it has been flushed.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from siteaccess.core.errors import NotFoundError
from siteaccess.models.base import utcnow
from siteaccess.models.project_membership import ProjectMembership
from siteaccess.permissions.expiry import (
    EXPIRING_SOON_DAYS,
    FINAL_NOTICE_DAYS,
    days_until,
    expiration_status,
    memberships_requiring_notification,
)
from siteaccess.schemas.expiration import (
    ExpirationCheckResult,
    ExpirationStats,
    ExpirationStatus,
    ExpirationWarning,
    NotificationType,
    RenewalDecision,
    RenewalStatus,
)
from siteaccess.services.resolver import RoleResolver

log = structlog.get_logger()


class ExpirationService:
    def __init__(
        self,
        resolver: RoleResolver,
        expiring_soon_days: int = EXPIRING_SOON_DAYS,
        final_notice_days: int = FINAL_NOTICE_DAYS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.resolver = resolver
        self.expiring_soon_days = expiring_soon_days
        self.final_notice_days = final_notice_days
        self.clock = clock or resolver.clock

    async def _get_membership(
        self, user_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession
    ) -> ProjectMembership:
        membership = await session.get(ProjectMembership, (user_id, project_id))
        if membership is None:
            raise NotFoundError(f"Membership not found for user {user_id} in project {project_id}")
        return membership

    async def _save(self, membership: ProjectMembership, session: AsyncSession) -> ProjectMembership:
        session.add(membership)
        await session.flush()
        await self.resolver.invalidate_cache(membership.user_id, membership.project_id, session=session)
        return membership

    # -- status -------------------------------------------------------------

    async def check_expiration(
        self, user_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession
    ) -> ExpirationCheckResult:
        role = await self.resolver.resolve(user_id, project_id, session)
        if role.is_inherited:
            return ExpirationCheckResult(status=ExpirationStatus.NO_EXPIRATION, is_inherited=True)

        membership = await self._get_membership(user_id, project_id, session)
        expires_at = membership.expires_at_utc
        if expires_at is None:
            return ExpirationCheckResult(status=ExpirationStatus.NO_EXPIRATION)

        now = self.clock()
        return ExpirationCheckResult(
            status=expiration_status(expires_at, now, self.expiring_soon_days),
            expires_at=expires_at,
            days_until_expiration=days_until(expires_at, now),
        )

    async def is_expired(self, user_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession) -> bool:
        result = await self.check_expiration(user_id, project_id, session)
        return result.status == ExpirationStatus.EXPIRED

    async def is_expiring_soon(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        session: AsyncSession,
        days_ahead: int | None = None,
    ) -> bool:
        result = await self.check_expiration(user_id, project_id, session)
        if result.status in (ExpirationStatus.NO_EXPIRATION, ExpirationStatus.EXPIRED):
            return False
        days_ahead = self.expiring_soon_days if days_ahead is None else days_ahead
        return result.days_until_expiration <= days_ahead

    # -- administrative changes ----------------------------------------------

    async def extend_expiration(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        new_expires_at: datetime,
        extended_by: uuid.UUID,
        session: AsyncSession,
        reason: str | None = None,
    ) -> ProjectMembership:
        membership = await self._get_membership(user_id, project_id, session)
        was_pending = membership.renewal_status == RenewalStatus.PENDING
        membership.extend_expiration(new_expires_at, extended_by, reason, now=self.clock())
        await self._save(membership, session)
        log.info(
            "membership.expiration_extended",
            user_id=str(user_id),
            project_id=str(project_id),
            expires_at=new_expires_at.isoformat(),
            auto_approved_renewal=was_pending,
        )
        return membership

    async def remove_expiration(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        removed_by: uuid.UUID,
        session: AsyncSession,
        reason: str | None = None,
    ) -> ProjectMembership:
        membership = await self._get_membership(user_id, project_id, session)
        membership.remove_expiration(removed_by, reason, now=self.clock())
        await self._save(membership, session)
        log.info("membership.expiration_removed", user_id=str(user_id), project_id=str(project_id))
        return membership

    # -- renewal workflow ---------------------------------------------------

    async def request_renewal(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        requested_by: uuid.UUID,
        session: AsyncSession,
        reason: str | None = None,
    ) -> ProjectMembership:
        membership = await self._get_membership(user_id, project_id, session)
        membership.request_renewal(requested_by, reason, now=self.clock())
        session.add(membership)
        await session.flush()
        log.info(
            "membership.renewal_requested",
            user_id=str(user_id),
            project_id=str(project_id),
            requested_by=str(requested_by),
        )
        return membership

    async def process_renewal(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        decision: RenewalDecision,
        processed_by: uuid.UUID,
        session: AsyncSession,
        new_expires_at: datetime | None = None,
        reason: str | None = None,
    ) -> ProjectMembership:
        membership = await self._get_membership(user_id, project_id, session)
        now = self.clock()
        if decision == RenewalDecision.APPROVE:
            membership.approve_renewal(processed_by, new_expires_at, reason, now=now)
            await self._save(membership, session)
        else:
            membership.deny_renewal(processed_by, reason, now=now)
            session.add(membership)
            await session.flush()
        log.info(
            "membership.renewal_processed",
            user_id=str(user_id),
            project_id=str(project_id),
            decision=decision.value,
            processed_by=str(processed_by),
        )
        return membership

    # -- notifications ------------------------------------------------------

    async def get_memberships_requiring_notification(
        self, project_id: uuid.UUID, session: AsyncSession
    ) -> list[ExpirationWarning]:
        result = await session.execute(
            select(ProjectMembership)
            .where(ProjectMembership.project_id == project_id)
            .where(ProjectMembership.expires_at.is_not(None))
        )
        return memberships_requiring_notification(
            result.scalars().all(),
            self.clock(),
            warning_days=self.expiring_soon_days,
            final_days=self.final_notice_days,
        )

    async def mark_notification_sent(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        notification_type: NotificationType,
        session: AsyncSession,
    ) -> bool:
        """Record a sent notification; repeated calls for the same type are no-ops."""
        membership = await self._get_membership(user_id, project_id, session)
        if not membership.mark_notified(notification_type, now=self.clock()):
            return False
        session.add(membership)
        await session.flush()
        return True

    # -- reporting ----------------------------------------------------------

    async def _project_memberships(self, project_id: uuid.UUID, session: AsyncSession) -> list[ProjectMembership]:
        result = await session.execute(
            select(ProjectMembership).where(ProjectMembership.project_id == project_id)
        )
        return list(result.scalars().all())

    async def get_pending_renewals(self, project_id: uuid.UUID, session: AsyncSession) -> list[ProjectMembership]:
        result = await session.execute(
            select(ProjectMembership)
            .where(ProjectMembership.project_id == project_id)
            .where(ProjectMembership.renewal_status == RenewalStatus.PENDING)
            .order_by(ProjectMembership.renewal_requested_at)
        )
        return list(result.scalars().all())

    async def get_expiring_memberships(
        self, project_id: uuid.UUID, session: AsyncSession, days_ahead: int | None = None
    ) -> list[ProjectMembership]:
        """Unexpired memberships that lapse within ``days_ahead`` days, soonest first."""
        now = self.clock()
        horizon = now + timedelta(days=self.expiring_soon_days if days_ahead is None else days_ahead)
        memberships = [
            m
            for m in await self._project_memberships(project_id, session)
            if m.expires_at is not None and now <= m.expires_at_utc <= horizon
        ]
        return sorted(memberships, key=lambda m: m.expires_at_utc)

    async def get_expired_memberships(self, project_id: uuid.UUID, session: AsyncSession) -> list[ProjectMembership]:
        now = self.clock()
        memberships = [m for m in await self._project_memberships(project_id, session) if m.is_expired_at(now)]
        return sorted(memberships, key=lambda m: m.expires_at_utc)

    async def get_expiration_stats(self, project_id: uuid.UUID, session: AsyncSession) -> ExpirationStats:
        now = self.clock()
        stats = ExpirationStats()
        for membership in await self._project_memberships(project_id, session):
            stats.total += 1
            status = expiration_status(membership.expires_at, now, self.expiring_soon_days)
            if status == ExpirationStatus.NO_EXPIRATION:
                stats.permanent += 1
            elif status == ExpirationStatus.EXPIRED:
                stats.expired += 1
            elif status == ExpirationStatus.EXPIRING_SOON:
                stats.expiring_soon += 1
            else:
                stats.active += 1
            if membership.renewal_status == RenewalStatus.PENDING:
                stats.pending_renewals += 1
            elif membership.renewal_status == RenewalStatus.APPROVED:
                stats.approved_renewals += 1
            elif membership.renewal_status == RenewalStatus.DENIED:
                stats.denied_renewals += 1
        return stats
