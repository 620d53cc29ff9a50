"""
Static role ordering used for privilege comparisons.
"""

from __future__ import annotations

from siteaccess.schemas.roles import OrganizationRole, ProjectRole

TOP_PROJECT_ROLE = ProjectRole.PROJECT_ADMIN

ORG_ROLE_LEVELS: dict[OrganizationRole, int] = {
    OrganizationRole.OWNER: 4,
    OrganizationRole.ORG_ADMIN: 3,
    OrganizationRole.ORG_MEMBER: 2,
    OrganizationRole.GUEST: 1,
}

# Only the administrative tiers are ordered; field roles share level 0.
PROJECT_ROLE_LEVELS: dict[ProjectRole, int] = {
    ProjectRole.PROJECT_ADMIN: 3,
    ProjectRole.PROJECT_MANAGER: 2,
    ProjectRole.PROJECT_ENGINEER: 1,
}

MANAGER_ROLES = frozenset({ProjectRole.PROJECT_ADMIN, ProjectRole.PROJECT_MANAGER})

READ_ONLY_ROLES = frozenset({ProjectRole.VIEWER, ProjectRole.INSPECTOR, ProjectRole.OWNER_REP})

SCOPE_LIMITED_ROLES = frozenset({ProjectRole.FOREMAN, ProjectRole.SUBCONTRACTOR})

INHERITING_ORG_ROLES = frozenset({OrganizationRole.OWNER, OrganizationRole.ORG_ADMIN})


def project_role_level(role: ProjectRole | None) -> int:
    if role is None:
        return -1
    return PROJECT_ROLE_LEVELS.get(role, 0)


def org_role_level(role: OrganizationRole | None) -> int:
    if role is None:
        return 0
    return ORG_ROLE_LEVELS[role]


def is_project_role_at_least(role: ProjectRole | None, minimum: ProjectRole) -> bool:
    return project_role_level(role) >= project_role_level(minimum)


def is_org_role_at_least(role: OrganizationRole | None, minimum: OrganizationRole) -> bool:
    return org_role_level(role) >= org_role_level(minimum)


def can_manage_members(role: ProjectRole | None) -> bool:
    return role in MANAGER_ROLES


def is_read_only(role: ProjectRole | None) -> bool:
    return role in READ_ONLY_ROLES


def is_scope_limited(role: ProjectRole | None) -> bool:
    return role in SCOPE_LIMITED_ROLES


def inherits_project_access(role: OrganizationRole | None) -> bool:
    """OWNER and ORG_ADMIN cascade into every project of their organization."""
    return role in INHERITING_ORG_ROLES
