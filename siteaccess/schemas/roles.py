"""
Role enumerations and the derived results produced by role resolution.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from siteaccess.schemas.expiration import ExpirationStatus


class SystemRole(str, Enum):
    USER = "user"
    SYSTEM_ADMIN = "system_admin"


class OrganizationRole(str, Enum):
    OWNER = "owner"
    ORG_ADMIN = "org_admin"
    ORG_MEMBER = "org_member"
    GUEST = "guest"


class ProjectRole(str, Enum):
    PROJECT_ADMIN = "project_admin"
    PROJECT_MANAGER = "project_manager"
    PROJECT_ENGINEER = "project_engineer"
    SUPERINTENDENT = "superintendent"
    FOREMAN = "foreman"
    ARCHITECT_ENGINEER = "architect_engineer"
    SUBCONTRACTOR = "subcontractor"
    OWNER_REP = "owner_rep"
    INSPECTOR = "inspector"
    VIEWER = "viewer"


class RoleSource(str, Enum):
    SYSTEM_ADMIN = "system_admin"
    ORG_OWNER = "org_owner"
    ORG_ADMIN = "org_admin"
    EXPLICIT = "explicit"
    NONE = "none"


INHERITED_SOURCES = frozenset({RoleSource.SYSTEM_ADMIN, RoleSource.ORG_OWNER, RoleSource.ORG_ADMIN})


class EffectiveRoleResult(BaseModel):
    """The role that applies to one (user, project) pair and where it came from."""

    model_config = ConfigDict(frozen=True)

    effective_role: ProjectRole | None = None
    source: RoleSource = RoleSource.NONE
    is_inherited: bool = False
    organization_id: uuid.UUID | None = None
    organization_name: str | None = None
    organization_role: OrganizationRole | None = None
    project_role: ProjectRole | None = None
    # Explicit memberships only
    scope: Any = None
    expires_at: datetime | None = None

    @property
    def has_access(self) -> bool:
        return self.effective_role is not None


class InheritanceStep(BaseModel):
    level: Literal["system", "organization", "project"]
    type: str
    role: str
    source: RoleSource
    description: str


class InheritanceChain(BaseModel):
    user_id: uuid.UUID
    project_id: uuid.UUID
    effective_role: ProjectRole | None
    source: RoleSource
    chain: list[InheritanceStep]


class RoleChangeValidation(BaseModel):
    allowed: bool
    reason: str | None = None


class ProjectAccess(BaseModel):
    """One project a user can reach, as listed by ``get_user_accessible_projects``."""

    project_id: uuid.UUID
    project_name: str
    organization_id: uuid.UUID
    organization_name: str
    effective_role: ProjectRole
    source: RoleSource
    is_inherited: bool
    scope: Any = None
    expires_at: datetime | None = None


class ProjectMemberEntry(BaseModel):
    user_id: uuid.UUID
    email: str
    full_name: str | None = None
    role: ProjectRole
    source: RoleSource
    is_inherited: bool
    organization_role: OrganizationRole | None = None
    scope: Any = None
    expires_at: datetime | None = None
    expiration_status: ExpirationStatus | None = None


class DenialReason(str, Enum):
    NO_ACCESS = "no_access"
    EXPIRED = "expired"
    NOT_GRANTED = "not_granted"
    OUT_OF_SCOPE = "out_of_scope"


class AccessDecision(BaseModel):
    allowed: bool
    capability: str
    effective_role: ProjectRole | None = None
    source: RoleSource = RoleSource.NONE
    reason: DenialReason | None = None
