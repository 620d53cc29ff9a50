"""
Membership mutation request models.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from siteaccess.schemas.roles import ProjectRole


class ProjectMemberCreate(BaseModel):
    user_id: uuid.UUID
    role: ProjectRole
    scope: list[Any] | dict[str, Any] | None = None
    expires_at: datetime | None = None
    expiration_reason: str | None = Field(default=None, max_length=1000)


class ProjectMemberUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied (``expires_at=None`` makes access permanent)."""

    role: ProjectRole | None = None
    scope: list[Any] | dict[str, Any] | None = None
    expires_at: datetime | None = None
    expiration_reason: str | None = Field(default=None, max_length=1000)
