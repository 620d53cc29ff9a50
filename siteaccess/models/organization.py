"""Organization model."""

from sqlmodel import Field

from siteaccess.models.base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, table=True):
    __tablename__ = "organizations"

    name: str = Field(max_length=255)
    is_active: bool = Field(default=True, nullable=False)
