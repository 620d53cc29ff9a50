"""Cache coherence when resolutions, writes and commits interleave."""

import asyncio
import uuid

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from siteaccess.core.database import after_commit, commit_session, rollback_session
from siteaccess.schemas.roles import EffectiveRoleResult, OrganizationRole, ProjectRole, RoleSource
from siteaccess.services import memberships
from siteaccess.services.resolver import ResolutionStrategy, RoleResolver
from tests.conftest import Factory


class GatedStrategy(ResolutionStrategy):
    """Grants FOREMAN, but only once the test opens the gate."""

    source = RoleSource.EXPLICIT

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def try_resolve(self, ctx):
        self.entered.set()
        await self.gate.wait()
        return EffectiveRoleResult(
            effective_role=ProjectRole.FOREMAN, source=self.source, project_role=ProjectRole.FOREMAN
        )


@pytest.fixture
async def file_engine(tmp_path):
    # Separate connections per session, so uncommitted writes stay invisible to readers.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'access.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(file_engine):
    return async_sessionmaker(file_engine, expire_on_commit=False)


@pytest.fixture
async def seeded(sessions):
    async with sessions() as s:
        factory = Factory(s)
        org = await factory.organization()
        project = await factory.project(org)
        owner = await factory.user()
        await factory.org_member(owner, org, OrganizationRole.OWNER)
        admin = await factory.user()
        await factory.org_member(admin, org, OrganizationRole.ORG_ADMIN)
        await s.commit()
    return {"org": org.id, "project": project.id, "owner": owner.id, "admin": admin.id}


async def _resolve(access, sessions, user_id, project_id):
    async with sessions() as s:
        return await access.resolver.resolve(user_id, project_id, s)


class TestAfterCommit:
    async def test_callbacks_run_only_after_commit(self, session):
        calls = []

        async def record():
            calls.append("ran")

        after_commit(session, record)
        await rollback_session(session)
        await commit_session(session)
        assert calls == []

        after_commit(session, record)
        assert calls == []
        await commit_session(session)
        assert calls == ["ran"]


class TestCrossSession:
    async def test_read_before_commit_does_not_outlive_demotion(self, access, sessions, seeded):
        async with sessions() as writer:
            await memberships.change_organization_role(
                seeded["org"], seeded["admin"], OrganizationRole.ORG_MEMBER, seeded["owner"], access, writer
            )
            # Another request still sees the committed ORG_ADMIN row and caches it.
            stale = await _resolve(access, sessions, seeded["admin"], seeded["project"])
            assert stale.source == RoleSource.ORG_ADMIN
            assert await access.cache.get(seeded["admin"], seeded["project"]) is not None

            await commit_session(writer)

        result = await _resolve(access, sessions, seeded["admin"], seeded["project"])
        assert not result.has_access
        assert result.source == RoleSource.NONE

    async def test_rolled_back_write_keeps_answers_correct(self, access, sessions, seeded):
        async with sessions() as writer:
            await memberships.change_organization_role(
                seeded["org"], seeded["admin"], OrganizationRole.ORG_MEMBER, seeded["owner"], access, writer
            )
            await rollback_session(writer)

        result = await _resolve(access, sessions, seeded["admin"], seeded["project"])
        assert result.source == RoleSource.ORG_ADMIN

    async def test_resolves_racing_a_demotion_settle_on_the_new_role(self, access, sessions, seeded):
        async def demote():
            async with sessions() as writer:
                await memberships.change_organization_role(
                    seeded["org"], seeded["admin"], OrganizationRole.ORG_MEMBER, seeded["owner"], access, writer
                )
                await commit_session(writer)

        reads = [_resolve(access, sessions, seeded["admin"], seeded["project"]) for _ in range(5)]
        await asyncio.gather(*reads[:3], demote(), *reads[3:])

        result = await _resolve(access, sessions, seeded["admin"], seeded["project"])
        assert not result.has_access

    async def test_concurrent_resolves_agree(self, access, sessions, seeded):
        results = await asyncio.gather(
            *(_resolve(access, sessions, seeded["admin"], seeded["project"]) for _ in range(10))
        )
        assert {r.source for r in results} == {RoleSource.ORG_ADMIN}
        assert {r.organization_id for r in results} == {seeded["org"]}


class TestInvalidationRace:
    async def test_invalidate_during_resolution_is_not_overwritten(self, cache):
        strategy = GatedStrategy()
        resolver = RoleResolver(cache, strategies=[strategy])
        user, project = uuid.uuid4(), uuid.uuid4()

        async def invalidate_mid_flight():
            await strategy.entered.wait()
            await resolver.invalidate_cache(user, project)
            strategy.gate.set()

        result, _ = await asyncio.gather(resolver.resolve(user, project, None), invalidate_mid_flight())

        assert result.effective_role == ProjectRole.FOREMAN
        assert await cache.get(user, project) is None

    async def test_resolution_without_invalidation_is_cached(self, cache):
        strategy = GatedStrategy()
        strategy.gate.set()
        resolver = RoleResolver(cache, strategies=[strategy])
        user, project = uuid.uuid4(), uuid.uuid4()

        await asyncio.gather(*(resolver.resolve(user, project, None) for _ in range(3)))

        assert (await cache.get(user, project)).effective_role == ProjectRole.FOREMAN
