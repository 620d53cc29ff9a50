"""
Expiration status, renewal workflow and notification schemas.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ExpirationStatus(str, Enum):
    NO_EXPIRATION = "no_expiration"
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


class RenewalStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


# Valid renewal transitions: current -> allowed targets
RENEWAL_TRANSITIONS: dict[RenewalStatus, set[RenewalStatus]] = {
    RenewalStatus.NONE: {RenewalStatus.PENDING},
    RenewalStatus.PENDING: {RenewalStatus.APPROVED, RenewalStatus.DENIED},
    RenewalStatus.APPROVED: {RenewalStatus.PENDING},
    RenewalStatus.DENIED: {RenewalStatus.PENDING},
}


class NotificationType(str, Enum):
    WARNING = "warning"
    FINAL = "final"
    EXPIRED = "expired"


class RenewalDecision(str, Enum):
    APPROVE = "approve"
    DENY = "deny"


class ExpirationCheckResult(BaseModel):
    status: ExpirationStatus
    expires_at: datetime | None = None
    days_until_expiration: int | None = None
    is_inherited: bool = False


class ExpirationWarning(BaseModel):
    """A membership that is due one notification of the given type."""

    user_id: uuid.UUID
    project_id: uuid.UUID
    notification_type: NotificationType
    expires_at: datetime
    days_until_expiration: int
    role: str


class ExpirationStats(BaseModel):
    total: int = 0
    permanent: int = 0
    active: int = 0
    expiring_soon: int = 0
    expired: int = 0
    pending_renewals: int = 0
    approved_renewals: int = 0
    denied_renewals: int = 0


class NotificationBatchResult(BaseModel):
    processed: int = 0
    warning: int = 0
    final: int = 0
    expired: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def sent(self) -> int:
        return self.warning + self.final + self.expired


def validate_renewal_transition(current: RenewalStatus, target: RenewalStatus) -> tuple[bool, str]:
    """Check if a renewal status transition is valid."""
    allowed = RENEWAL_TRANSITIONS.get(current, set())
    if target in allowed:
        return True, ""
    if current == RenewalStatus.PENDING and target == RenewalStatus.PENDING:
        return False, "Renewal request already pending"
    if target in (RenewalStatus.APPROVED, RenewalStatus.DENIED):
        if current == RenewalStatus.NONE:
            return False, "No renewal request to process"
        return False, f"Renewal request already {current.value}"
    return False, f"Invalid renewal transition: {current.value} -> {target.value}"
