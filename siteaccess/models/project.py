"""Project model. Every project belongs to exactly one organization."""

import uuid

from sqlmodel import Field

from siteaccess.models.base import TimestampMixin, UUIDMixin


class Project(UUIDMixin, TimestampMixin, table=True):
    __tablename__ = "projects"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    name: str = Field(max_length=255)
