"""Organization membership join table with per-org role."""

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from siteaccess.models.base import utcnow
from siteaccess.schemas.roles import OrganizationRole


class OrganizationMembership(SQLModel, table=True):
    __tablename__ = "organization_memberships"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", primary_key=True)
    role: OrganizationRole = Field(default=OrganizationRole.ORG_MEMBER, nullable=False)
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
