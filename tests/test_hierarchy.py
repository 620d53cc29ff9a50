"""Tests for role ordering and role groups."""

from siteaccess.permissions.hierarchy import (
    TOP_PROJECT_ROLE,
    can_manage_members,
    inherits_project_access,
    is_org_role_at_least,
    is_project_role_at_least,
    is_read_only,
    is_scope_limited,
    org_role_level,
    project_role_level,
)
from siteaccess.schemas.roles import OrganizationRole, ProjectRole


class TestProjectRoles:
    def test_top_role(self):
        assert TOP_PROJECT_ROLE == ProjectRole.PROJECT_ADMIN

    def test_admin_tiers(self):
        assert project_role_level(ProjectRole.PROJECT_ADMIN) == 3
        assert project_role_level(ProjectRole.PROJECT_MANAGER) == 2
        assert project_role_level(ProjectRole.PROJECT_ENGINEER) == 1
        assert project_role_level(ProjectRole.FOREMAN) == 0
        assert project_role_level(None) == -1

    def test_at_least(self):
        assert is_project_role_at_least(ProjectRole.PROJECT_ADMIN, ProjectRole.PROJECT_MANAGER)
        assert not is_project_role_at_least(ProjectRole.VIEWER, ProjectRole.PROJECT_ENGINEER)
        # Field roles share a tier
        assert is_project_role_at_least(ProjectRole.VIEWER, ProjectRole.SUPERINTENDENT)
        assert not is_project_role_at_least(None, ProjectRole.VIEWER)

    def test_groups(self):
        assert can_manage_members(ProjectRole.PROJECT_MANAGER)
        assert not can_manage_members(ProjectRole.PROJECT_ENGINEER)
        assert is_read_only(ProjectRole.OWNER_REP)
        assert not is_read_only(ProjectRole.FOREMAN)
        assert is_scope_limited(ProjectRole.SUBCONTRACTOR)
        assert not is_scope_limited(ProjectRole.PROJECT_ADMIN)
        assert not is_scope_limited(None)


class TestOrganizationRoles:
    def test_levels(self):
        levels = [org_role_level(r) for r in OrganizationRole]
        assert levels == [4, 3, 2, 1]

    def test_at_least(self):
        assert is_org_role_at_least(OrganizationRole.OWNER, OrganizationRole.ORG_ADMIN)
        assert not is_org_role_at_least(OrganizationRole.GUEST, OrganizationRole.ORG_MEMBER)
        assert not is_org_role_at_least(None, OrganizationRole.GUEST)

    def test_inheritance(self):
        assert inherits_project_access(OrganizationRole.OWNER)
        assert inherits_project_access(OrganizationRole.ORG_ADMIN)
        assert not inherits_project_access(OrganizationRole.ORG_MEMBER)
        assert not inherits_project_access(OrganizationRole.GUEST)
        assert not inherits_project_access(None)
