"""Tests for effective role resolution, caching and the derived queries."""

import uuid
from datetime import timedelta

import pytest

from siteaccess.core.errors import NotFoundError
from siteaccess.models.project_membership import ProjectMembership
from siteaccess.schemas.expiration import ExpirationStatus
from siteaccess.schemas.roles import (
    EffectiveRoleResult,
    OrganizationRole,
    ProjectRole,
    RoleSource,
    SystemRole,
)
from siteaccess.services.resolver import (
    ExplicitMembershipStrategy,
    OrganizationRoleStrategy,
    ResolutionContext,
    RoleResolver,
    SystemAdminStrategy,
)
from tests.conftest import NOW


class TestResolution:
    async def test_org_admin_inherits_top_role(self, access, factory, session, org, project):
        user = await factory.user()
        await factory.org_member(user, org, OrganizationRole.ORG_ADMIN)

        result = await access.resolver.resolve(user.id, project.id, session)

        assert result.effective_role == ProjectRole.PROJECT_ADMIN
        assert result.source == RoleSource.ORG_ADMIN
        assert result.is_inherited
        assert result.organization_id == org.id
        assert result.organization_role == OrganizationRole.ORG_ADMIN

    async def test_expired_membership_grants_nothing(self, access, factory, session, org, project):
        user = await factory.user()
        await factory.org_member(user, org)
        await factory.project_member(user, project, ProjectRole.VIEWER, expires_at=NOW - timedelta(days=1))

        result = await access.resolver.resolve(user.id, project.id, session)

        assert result.effective_role is None
        assert result.source == RoleSource.NONE
        assert not result.has_access
        check = await access.expiration.check_expiration(user.id, project.id, session)
        assert check.status == ExpirationStatus.EXPIRED

    async def test_explicit_membership(self, access, factory, session, org, project):
        user = await factory.user()
        await factory.org_member(user, org)
        await factory.project_member(
            user,
            project,
            ProjectRole.FOREMAN,
            scope={"trades": ["electrical"]},
            expires_at=NOW + timedelta(days=30),
        )

        result = await access.resolver.resolve(user.id, project.id, session)

        assert result.effective_role == ProjectRole.FOREMAN
        assert result.source == RoleSource.EXPLICIT
        assert not result.is_inherited
        assert result.project_role == ProjectRole.FOREMAN
        assert result.scope == {"trades": ["electrical"]}
        assert result.expires_at == NOW + timedelta(days=30)
        assert result.organization_role == OrganizationRole.ORG_MEMBER

    async def test_system_admin_beats_explicit_row(self, access, factory, session, project):
        user = await factory.user(SystemRole.SYSTEM_ADMIN)
        await factory.project_member(user, project, ProjectRole.VIEWER)

        result = await access.resolver.resolve(user.id, project.id, session)

        assert result.effective_role == ProjectRole.PROJECT_ADMIN
        assert result.source == RoleSource.SYSTEM_ADMIN

    async def test_owner_shadows_explicit_row(self, access, factory, session, org, project):
        user = await factory.user()
        await factory.org_member(user, org, OrganizationRole.OWNER)
        await factory.project_member(user, project, ProjectRole.VIEWER)

        result = await access.resolver.resolve(user.id, project.id, session)

        assert result.effective_role == ProjectRole.PROJECT_ADMIN
        assert result.source == RoleSource.ORG_OWNER
        assert result.project_role is None

    async def test_inherited_access_ignores_expired_row(self, access, factory, session, org, project):
        user = await factory.user()
        await factory.org_member(user, org, OrganizationRole.ORG_ADMIN)
        await factory.project_member(user, project, ProjectRole.VIEWER, expires_at=NOW - timedelta(days=3))

        result = await access.resolver.resolve(user.id, project.id, session)

        assert result.source == RoleSource.ORG_ADMIN
        check = await access.expiration.check_expiration(user.id, project.id, session)
        assert check.status == ExpirationStatus.NO_EXPIRATION
        assert check.is_inherited

    async def test_guest_without_membership(self, access, factory, session, org, project):
        user = await factory.user()
        await factory.org_member(user, org, OrganizationRole.GUEST)

        result = await access.resolver.resolve(user.id, project.id, session)

        assert result.source == RoleSource.NONE
        assert result.organization_role == OrganizationRole.GUEST

    async def test_missing_rows_degrade_to_none(self, access, factory, session, project):
        user = await factory.user()

        missing_project = await access.resolver.resolve(user.id, uuid.uuid4(), session)
        missing_user = await access.resolver.resolve(uuid.uuid4(), project.id, session)

        assert missing_project.source == RoleSource.NONE
        assert missing_project.organization_id is None
        assert missing_user.source == RoleSource.NONE

    async def test_has_inherited_access(self, access, factory, session, org, project, project_admin):
        owner = await factory.user()
        await factory.org_member(owner, org, OrganizationRole.OWNER)

        assert await access.resolver.has_inherited_access(owner.id, project.id, session)
        assert not await access.resolver.has_inherited_access(project_admin.id, project.id, session)


class TestStrategies:
    async def test_each_strategy_in_isolation(self, factory, session, org, project):
        user = await factory.user()
        await factory.org_member(user, org, OrganizationRole.ORG_ADMIN)
        ctx = ResolutionContext(user.id, project.id, session, NOW)

        assert await SystemAdminStrategy().try_resolve(ctx) is None
        assert await OrganizationRoleStrategy(OrganizationRole.OWNER).try_resolve(ctx) is None
        admin = await OrganizationRoleStrategy(OrganizationRole.ORG_ADMIN).try_resolve(ctx)
        assert admin.source == RoleSource.ORG_ADMIN
        assert await ExplicitMembershipStrategy().try_resolve(ctx) is None

    async def test_custom_strategy_order(self, cache, factory, session, org, project):
        user = await factory.user()
        await factory.org_member(user, org, OrganizationRole.ORG_ADMIN)
        await factory.project_member(user, project, ProjectRole.INSPECTOR)
        resolver = RoleResolver(cache, strategies=[ExplicitMembershipStrategy()])

        result = await resolver.resolve_fresh(user.id, project.id, session)

        assert result.effective_role == ProjectRole.INSPECTOR


class TestCaching:
    async def test_second_resolve_hits_cache(self, access, session, project, project_admin):
        first = await access.resolver.resolve(project_admin.id, project.id, session)
        second = await access.resolver.resolve(project_admin.id, project.id, session)

        assert first == second
        assert access.metrics.get("role_cache_hits_total") == 1
        assert access.metrics.get("role_resolutions_explicit_total") == 1

    async def test_invalidation_exposes_new_role(self, access, session, project, project_admin):
        await access.resolver.resolve(project_admin.id, project.id, session)
        membership = await session.get(ProjectMembership, (project_admin.id, project.id))
        membership.role = ProjectRole.VIEWER
        await session.flush()

        stale = await access.resolver.resolve(project_admin.id, project.id, session)
        assert stale.effective_role == ProjectRole.PROJECT_ADMIN

        await access.resolver.invalidate_cache(project_admin.id, project.id)
        fresh = await access.resolver.resolve(project_admin.id, project.id, session)
        assert fresh.effective_role == ProjectRole.VIEWER

    async def test_cached_role_never_outlives_expiry(self, access, clock, factory, session, org, project):
        user = await factory.user()
        await factory.org_member(user, org)
        await factory.project_member(user, project, ProjectRole.VIEWER, expires_at=NOW + timedelta(minutes=5))

        before = await access.resolver.resolve(user.id, project.id, session)
        clock.advance(minutes=6)
        after = await access.resolver.resolve(user.id, project.id, session)

        assert before.effective_role == ProjectRole.VIEWER
        assert after.effective_role is None

    async def test_ttl_bounded_by_expiry(self, access):
        result = EffectiveRoleResult(
            effective_role=ProjectRole.VIEWER,
            source=RoleSource.EXPLICIT,
            expires_at=NOW + timedelta(seconds=30),
        )
        assert access.resolver._ttl_for(result, NOW) == 30
        assert access.resolver._ttl_for(EffectiveRoleResult(), NOW) == access.settings.role_cache_ttl_seconds

    async def test_organization_invalidation(self, access, factory, session, org, project, project_admin):
        owner = await factory.user()
        await factory.org_member(owner, org, OrganizationRole.OWNER)
        outsider = await factory.user()
        await factory.project_member(outsider, project, ProjectRole.VIEWER)
        await access.resolver.resolve(owner.id, project.id, session)

        count = await access.resolver.invalidate_organization_cache(org.id, session)

        assert count == 3
        assert await access.resolver.cache.get(owner.id, project.id) is None


class TestRoleChanges:
    async def test_reasons(self, access, factory, session, org, project, project_admin):
        sysadmin = await factory.user(SystemRole.SYSTEM_ADMIN)
        owner = await factory.user()
        await factory.org_member(owner, org, OrganizationRole.OWNER)
        admin = await factory.user()
        await factory.org_member(admin, org, OrganizationRole.ORG_ADMIN)
        outsider = await factory.user()
        await factory.org_member(outsider, org)

        async def reason(target):
            check = await access.resolver.can_change_project_role(
                target.id, project.id, ProjectRole.VIEWER, project_admin.id, session
            )
            assert not check.allowed
            return check.reason

        assert await reason(sysadmin) == "Cannot change role for system administrators"
        assert (await reason(owner)).startswith("Cannot change role for organization owners")
        assert (await reason(admin)).startswith("Cannot change role for organization admins")
        assert await reason(outsider) == "User does not have explicit project membership"

    async def test_requester_must_be_project_admin(self, access, factory, session, org, project, project_admin):
        manager = await factory.user()
        await factory.org_member(manager, org)
        await factory.project_member(manager, project, ProjectRole.PROJECT_MANAGER)
        worker = await factory.user()
        await factory.org_member(worker, org)
        await factory.project_member(worker, project, ProjectRole.FOREMAN)

        denied = await access.resolver.can_change_project_role(
            worker.id, project.id, ProjectRole.SUPERINTENDENT, manager.id, session
        )
        allowed = await access.resolver.can_change_project_role(
            worker.id, project.id, ProjectRole.SUPERINTENDENT, project_admin.id, session
        )

        assert denied.reason == "You must be a PROJECT_ADMIN to change user roles"
        assert allowed.allowed


class TestInheritanceChain:
    async def test_org_admin_chain(self, access, factory, session, org, project):
        user = await factory.user()
        await factory.org_member(user, org, OrganizationRole.ORG_ADMIN)

        chain = await access.resolver.get_inheritance_chain(user.id, project.id, session)

        assert [s.level for s in chain.chain] == ["organization", "project"]
        assert chain.chain[1].type == "inherited_role"
        assert chain.source == RoleSource.ORG_ADMIN

    async def test_explicit_chain(self, access, session, project, project_admin):
        chain = await access.resolver.get_inheritance_chain(project_admin.id, project.id, session)

        assert [s.type for s in chain.chain] == ["organization_role", "explicit_role"]
        assert chain.chain[0].source == RoleSource.NONE

    async def test_system_admin_chain(self, access, factory, session, project):
        user = await factory.user(SystemRole.SYSTEM_ADMIN)

        chain = await access.resolver.get_inheritance_chain(user.id, project.id, session)

        assert len(chain.chain) == 1
        assert chain.chain[0].level == "system"


class TestListings:
    async def test_accessible_projects(self, access, factory, session, org, project):
        other_org = await factory.organization("Zenith Civil")
        bridge = await factory.project(other_org, "Bridge")
        depot = await factory.project(other_org, "Depot")
        annex = await factory.project(org, "Annex")

        user = await factory.user()
        await factory.org_member(user, org, OrganizationRole.OWNER)
        await factory.org_member(user, other_org)
        await factory.project_member(user, bridge, ProjectRole.INSPECTOR)
        await factory.project_member(user, depot, ProjectRole.VIEWER, expires_at=NOW - timedelta(days=1))

        projects = await access.resolver.get_user_accessible_projects(user.id, session)

        assert [p.project_id for p in projects] == [annex.id, project.id, bridge.id]
        assert projects[0].source == RoleSource.ORG_OWNER
        assert projects[2].effective_role == ProjectRole.INSPECTOR
        assert not projects[2].is_inherited

        scoped = await access.resolver.get_user_accessible_projects(user.id, session, other_org.id)
        assert [p.project_id for p in scoped] == [bridge.id]

    async def test_system_admin_sees_everything(self, access, factory, session, org, project):
        await factory.project(org, "Annex")
        user = await factory.user(SystemRole.SYSTEM_ADMIN)

        projects = await access.resolver.get_user_accessible_projects(user.id, session)

        assert len(projects) == 2
        assert all(p.source == RoleSource.SYSTEM_ADMIN for p in projects)

    async def test_unknown_user_has_no_projects(self, access, session):
        assert await access.resolver.get_user_accessible_projects(uuid.uuid4(), session) == []

    async def test_project_members(self, access, factory, session, org, project, project_admin):
        admin = await factory.user(email="aaa-admin@example.com")
        await factory.org_member(admin, org, OrganizationRole.ORG_ADMIN)
        shadowed = await factory.user(email="bbb-owner@example.com")
        await factory.org_member(shadowed, org, OrganizationRole.OWNER)
        await factory.project_member(shadowed, project, ProjectRole.VIEWER)
        temp = await factory.user(email="ccc-temp@example.com")
        await factory.org_member(temp, org)
        await factory.project_member(temp, project, ProjectRole.VIEWER, expires_at=NOW + timedelta(days=3))

        explicit = await access.resolver.get_project_members(project.id, session)
        everyone = await access.resolver.get_project_members(project.id, session, include_inherited=True)

        by_user = {e.user_id: e for e in explicit}
        assert set(by_user) == {project_admin.id, shadowed.id, temp.id}
        assert by_user[shadowed.id].source == RoleSource.ORG_OWNER
        assert by_user[shadowed.id].role == ProjectRole.PROJECT_ADMIN
        assert by_user[temp.id].expiration_status == ExpirationStatus.EXPIRING_SOON
        assert everyone[0].user_id == admin.id
        assert everyone[0].is_inherited

    async def test_project_members_unknown_project(self, access, session):
        with pytest.raises(NotFoundError):
            await access.resolver.get_project_members(uuid.uuid4(), session)
