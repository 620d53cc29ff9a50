"""User model: identity plus the global system role."""

from sqlmodel import Field

from siteaccess.models.base import TimestampMixin, UUIDMixin
from siteaccess.schemas.roles import SystemRole


class User(UUIDMixin, TimestampMixin, table=True):
    __tablename__ = "users"

    email: str = Field(max_length=255, unique=True, index=True)
    full_name: str | None = Field(default=None, max_length=255)
    system_role: SystemRole = Field(default=SystemRole.USER, nullable=False)

    @property
    def is_system_admin(self) -> bool:
        return self.system_role == SystemRole.SYSTEM_ADMIN
