"""
Explicit project membership with scope, expiration and renewal bookkeeping.

The renewal and notification fields only mean something while
``expires_at`` is set; the transition methods below are the only code that
writes them, so the combinations stay valid.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from siteaccess.core.errors import InvalidStateError
from siteaccess.models.base import ensure_utc, utcnow
from siteaccess.schemas.expiration import (
    NotificationType,
    RenewalStatus,
    validate_renewal_transition,
)
from siteaccess.schemas.roles import ProjectRole

_NOTIFIED_FIELDS = {
    NotificationType.WARNING: "warning_notified_at",
    NotificationType.FINAL: "final_notified_at",
    NotificationType.EXPIRED: "expired_notified_at",
}


def _tz_column() -> Any:
    return sa.DateTime(timezone=True)


class ProjectMembership(SQLModel, table=True):
    __tablename__ = "project_memberships"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", primary_key=True)
    role: ProjectRole = Field(nullable=False)
    scope: Any = Field(default=None, sa_type=sa.JSON, nullable=True)

    added_by: uuid.UUID | None = Field(default=None)
    added_at: datetime = Field(default_factory=utcnow, nullable=False, sa_type=_tz_column())

    # Expiration
    expires_at: datetime | None = Field(default=None, index=True, sa_type=_tz_column())
    expiration_reason: str | None = Field(default=None, max_length=1000)
    warning_notified_at: datetime | None = Field(default=None, sa_type=_tz_column())
    final_notified_at: datetime | None = Field(default=None, sa_type=_tz_column())
    expired_notified_at: datetime | None = Field(default=None, sa_type=_tz_column())

    # Renewal
    renewal_requested: bool = Field(default=False, nullable=False)
    renewal_status: RenewalStatus = Field(default=RenewalStatus.NONE, nullable=False)
    renewal_requested_by: uuid.UUID | None = Field(default=None)
    renewal_requested_at: datetime | None = Field(default=None, sa_type=_tz_column())
    renewal_processed_by: uuid.UUID | None = Field(default=None)
    renewal_processed_at: datetime | None = Field(default=None, sa_type=_tz_column())
    renewal_reason: str | None = Field(default=None, max_length=1000)

    @property
    def expires_at_utc(self) -> datetime | None:
        return ensure_utc(self.expires_at)

    def is_expired_at(self, now: datetime) -> bool:
        expires_at = self.expires_at_utc
        return expires_at is not None and expires_at < now

    def notified_at(self, kind: NotificationType) -> datetime | None:
        return getattr(self, _NOTIFIED_FIELDS[kind])

    def reset_notifications(self) -> None:
        for field in _NOTIFIED_FIELDS.values():
            setattr(self, field, None)

    def mark_notified(self, kind: NotificationType, now: datetime | None = None) -> bool:
        """Record a sent notification. Returns False if it was already recorded."""
        if self.notified_at(kind) is not None:
            return False
        setattr(self, _NOTIFIED_FIELDS[kind], now or utcnow())
        return True

    # -- renewal workflow ---------------------------------------------------

    def _transition(self, target: RenewalStatus) -> None:
        ok, msg = validate_renewal_transition(self.renewal_status, target)
        if not ok:
            raise InvalidStateError(msg)

    def _auto_approve(self, processed_by: uuid.UUID, now: datetime) -> None:
        if self.renewal_status == RenewalStatus.PENDING:
            self.renewal_status = RenewalStatus.APPROVED
            self.renewal_processed_by = processed_by
            self.renewal_processed_at = now

    def request_renewal(
        self, requested_by: uuid.UUID, reason: str | None = None, now: datetime | None = None
    ) -> None:
        if self.expires_at is None:
            raise InvalidStateError("Cannot request renewal for membership without expiration")
        self._transition(RenewalStatus.PENDING)
        self.renewal_requested = True
        self.renewal_status = RenewalStatus.PENDING
        self.renewal_requested_by = requested_by
        self.renewal_requested_at = now or utcnow()
        self.renewal_reason = reason
        self.renewal_processed_by = None
        self.renewal_processed_at = None

    def approve_renewal(
        self,
        processed_by: uuid.UUID,
        new_expires_at: datetime | None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        now = now or utcnow()
        self._transition(RenewalStatus.APPROVED)
        if new_expires_at is None:
            raise InvalidStateError("New expiration date required for approval")
        if ensure_utc(new_expires_at) <= now:
            raise InvalidStateError("New expiration date must be in the future")
        self.renewal_status = RenewalStatus.APPROVED
        self.renewal_processed_by = processed_by
        self.renewal_processed_at = now
        if reason:
            self.renewal_reason = reason
        self.expires_at = new_expires_at
        self.reset_notifications()

    def deny_renewal(
        self, processed_by: uuid.UUID, reason: str | None = None, now: datetime | None = None
    ) -> None:
        self._transition(RenewalStatus.DENIED)
        self.renewal_status = RenewalStatus.DENIED
        self.renewal_processed_by = processed_by
        self.renewal_processed_at = now or utcnow()
        if reason:
            self.renewal_reason = reason

    # -- administrative shortcuts --------------------------------------------

    def extend_expiration(
        self,
        new_expires_at: datetime,
        changed_by: uuid.UUID,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        now = now or utcnow()
        if ensure_utc(new_expires_at) <= now:
            raise InvalidStateError("New expiration date must be in the future")
        self.expires_at = new_expires_at
        self.expiration_reason = reason
        self.reset_notifications()
        self._auto_approve(changed_by, now)

    def remove_expiration(
        self, changed_by: uuid.UUID, reason: str | None = None, now: datetime | None = None
    ) -> None:
        now = now or utcnow()
        self.expires_at = None
        self.expiration_reason = None
        self.reset_notifications()
        if self.renewal_status == RenewalStatus.PENDING:
            self._auto_approve(changed_by, now)
            self.renewal_reason = reason or "Expiration removed - access made permanent"
