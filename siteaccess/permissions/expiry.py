"""
Expiration status and notification classification.

Status is never stored; it is a pure function of ``expires_at`` and the
current time.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timedelta

from siteaccess.models.base import ensure_utc
from siteaccess.models.project_membership import ProjectMembership
from siteaccess.schemas.expiration import (
    ExpirationStatus,
    ExpirationWarning,
    NotificationType,
)

DAY = timedelta(days=1)
EXPIRING_SOON_DAYS = 7
FINAL_NOTICE_DAYS = 1


def days_until(expires_at: datetime, now: datetime) -> int:
    """Whole days remaining, rounded up; zero or negative once past."""
    return math.ceil((ensure_utc(expires_at) - now) / DAY)


def expiration_status(
    expires_at: datetime | None,
    now: datetime,
    expiring_soon_days: int = EXPIRING_SOON_DAYS,
) -> ExpirationStatus:
    if expires_at is None:
        return ExpirationStatus.NO_EXPIRATION
    if ensure_utc(expires_at) < now:
        return ExpirationStatus.EXPIRED
    if days_until(expires_at, now) <= expiring_soon_days:
        return ExpirationStatus.EXPIRING_SOON
    return ExpirationStatus.ACTIVE


def classify_notification(
    membership: ProjectMembership,
    now: datetime,
    warning_days: int = EXPIRING_SOON_DAYS,
    final_days: int = FINAL_NOTICE_DAYS,
) -> NotificationType | None:
    """The one notification this membership is due, if any."""
    if membership.expires_at is None:
        return None
    days = days_until(membership.expires_at, now)
    if days <= 0:
        kind = NotificationType.EXPIRED
    elif days <= final_days:
        kind = NotificationType.FINAL
    elif days <= warning_days:
        kind = NotificationType.WARNING
    else:
        return None
    if membership.notified_at(kind) is not None:
        return None
    return kind


def memberships_requiring_notification(
    memberships: Iterable[ProjectMembership],
    now: datetime,
    warning_days: int = EXPIRING_SOON_DAYS,
    final_days: int = FINAL_NOTICE_DAYS,
) -> list[ExpirationWarning]:
    warnings = []
    for membership in memberships:
        kind = classify_notification(membership, now, warning_days, final_days)
        if kind is None:
            continue
        warnings.append(
            ExpirationWarning(
                user_id=membership.user_id,
                project_id=membership.project_id,
                notification_type=kind,
                expires_at=ensure_utc(membership.expires_at),
                days_until_expiration=max(0, days_until(membership.expires_at, now)),
                role=membership.role.value,
            )
        )
    return warnings
