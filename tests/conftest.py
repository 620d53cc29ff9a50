"""Test fixtures: in-memory SQLite, a frozen clock and row factories."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import siteaccess.models  # noqa: F401  registers tables
from siteaccess.core.config import Settings
from siteaccess.models.org_membership import OrganizationMembership
from siteaccess.models.organization import Organization
from siteaccess.models.project import Project
from siteaccess.models.project_membership import ProjectMembership
from siteaccess.models.user import User
from siteaccess.schemas.roles import OrganizationRole, ProjectRole, SystemRole
from siteaccess.services.cache import InMemoryRoleCache
from siteaccess.services.engine import AccessEngine

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class Factory:
    """Creates and flushes rows in the test session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._n = 0

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def user(self, system_role: SystemRole = SystemRole.USER, email: str | None = None) -> User:
        self._n += 1
        return await self._save(
            User(
                email=email or f"user{self._n}@example.com",
                full_name=f"User {self._n}",
                system_role=system_role,
            )
        )

    async def organization(self, name: str = "Acme Builders") -> Organization:
        return await self._save(Organization(name=name))

    async def project(self, org: Organization, name: str = "Tower A") -> Project:
        return await self._save(Project(organization_id=org.id, name=name))

    async def org_member(
        self, user: User, org: Organization, role: OrganizationRole = OrganizationRole.ORG_MEMBER
    ) -> OrganizationMembership:
        return await self._save(
            OrganizationMembership(user_id=user.id, organization_id=org.id, role=role)
        )

    async def project_member(
        self,
        user: User,
        project: Project,
        role: ProjectRole = ProjectRole.VIEWER,
        **fields,
    ) -> ProjectMembership:
        return await self._save(
            ProjectMembership(user_id=user.id, project_id=project.id, role=role, **fields)
        )


@pytest.fixture
async def async_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as s:
        yield s


@pytest.fixture
def factory(session) -> Factory:
    return Factory(session)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def cache() -> InMemoryRoleCache:
    return InMemoryRoleCache()


@pytest.fixture
def access(cache, settings, clock) -> AccessEngine:
    return AccessEngine(cache, settings, clock=clock)


@pytest.fixture
async def org(factory) -> Organization:
    return await factory.organization()


@pytest.fixture
async def project(factory, org) -> Project:
    return await factory.project(org)


@pytest.fixture
async def project_admin(factory, org, project) -> User:
    """Explicit PROJECT_ADMIN who is a plain org member."""
    user = await factory.user()
    await factory.org_member(user, org)
    await factory.project_member(user, project, ProjectRole.PROJECT_ADMIN)
    return user
