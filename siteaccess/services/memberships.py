"""
Membership service: write paths that change who can reach a project.

Every committed change to a role, scope or expiration calls the resolver's
invalidation hooks before returning.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from siteaccess.core.errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from siteaccess.models.base import ensure_utc
from siteaccess.models.org_membership import OrganizationMembership
from siteaccess.models.project import Project
from siteaccess.models.project_membership import ProjectMembership
from siteaccess.models.user import User
from siteaccess.permissions import capabilities as caps
from siteaccess.permissions.hierarchy import INHERITING_ORG_ROLES
from siteaccess.permissions.scope import validate_scope
from siteaccess.schemas.memberships import ProjectMemberCreate, ProjectMemberUpdate
from siteaccess.schemas.roles import OrganizationRole, ProjectRole
from siteaccess.schemas.scope import coerce_scope, scope_to_json
from siteaccess.services.engine import AccessEngine

log = structlog.get_logger()


async def _require_capability(
    engine: AccessEngine,
    requester_id: uuid.UUID,
    project_id: uuid.UUID,
    capability: str,
    session: AsyncSession,
) -> None:
    if not await engine.capabilities.has_capability(
        requester_id, project_id, capability, session, fresh=True
    ):
        raise ForbiddenError("You do not have permission to manage project members")


async def _get_project(project_id: uuid.UUID, session: AsyncSession) -> Project:
    project = await session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project


async def _get_project_membership(
    project_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> ProjectMembership:
    membership = await session.get(ProjectMembership, (user_id, project_id))
    if membership is None:
        raise NotFoundError("Project membership not found")
    return membership


# ---------------------------------------------------------------------------
# Project membership
# ---------------------------------------------------------------------------

async def add_project_member(
    project_id: uuid.UUID,
    req: ProjectMemberCreate,
    requester_id: uuid.UUID,
    engine: AccessEngine,
    session: AsyncSession,
) -> ProjectMembership:
    """Grant explicit access to a user who is already in the project's organization."""
    project = await _get_project(project_id, session)
    await _require_capability(engine, requester_id, project_id, caps.MEMBERS_INVITE, session)

    if await session.get(User, req.user_id) is None:
        raise NotFoundError("User not found")

    org_membership = await session.get(OrganizationMembership, (req.user_id, project.organization_id))
    if org_membership is None:
        raise InvalidStateError("User must be an organization member before being added to projects")

    if await engine.resolver.has_inherited_access(req.user_id, project_id, session, fresh=True):
        raise ConflictError(
            "User already has inherited access to this project as an organization owner/admin"
        )

    if await session.get(ProjectMembership, (req.user_id, project_id)) is not None:
        raise ConflictError("User is already a member of this project")

    validate_scope(req.scope)
    if req.expires_at is not None and ensure_utc(req.expires_at) <= engine.resolver.clock():
        raise InvalidStateError("Expiration date must be in the future")

    membership = ProjectMembership(
        user_id=req.user_id,
        project_id=project_id,
        role=req.role,
        scope=scope_to_json(coerce_scope(req.scope)),
        expires_at=req.expires_at,
        expiration_reason=req.expiration_reason,
        added_by=requester_id,
    )
    session.add(membership)
    await session.flush()
    await engine.resolver.invalidate_cache(req.user_id, project_id, session=session)

    log.info(
        "membership.added",
        project_id=str(project_id),
        user_id=str(req.user_id),
        role=req.role.value,
        added_by=str(requester_id),
    )
    return membership


async def update_project_member(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    req: ProjectMemberUpdate,
    requester_id: uuid.UUID,
    engine: AccessEngine,
    session: AsyncSession,
) -> ProjectMembership:
    """Apply the fields set on ``req`` to an explicit membership."""
    await _get_project(project_id, session)
    await _require_capability(engine, requester_id, project_id, caps.MEMBERS_UPDATE, session)

    if await engine.resolver.has_inherited_access(user_id, project_id, session, fresh=True):
        raise ForbiddenError("Cannot modify inherited access. Remove organization role instead.")

    membership = await _get_project_membership(project_id, user_id, session)
    fields = req.model_fields_set

    if "role" in fields and req.role is not None and req.role != membership.role:
        check = await engine.resolver.can_change_project_role(
            user_id, project_id, req.role, requester_id, session, fresh=True
        )
        if not check.allowed:
            raise ForbiddenError(check.reason)
        membership.role = req.role

    if "scope" in fields:
        validate_scope(req.scope)
        membership.scope = scope_to_json(coerce_scope(req.scope))

    if "expires_at" in fields:
        if req.expires_at is None:
            membership.remove_expiration(requester_id, now=engine.resolver.clock())
        else:
            membership.extend_expiration(
                req.expires_at, requester_id, req.expiration_reason, now=engine.resolver.clock()
            )
    elif "expiration_reason" in fields:
        membership.expiration_reason = req.expiration_reason

    session.add(membership)
    await session.flush()
    await engine.resolver.invalidate_cache(user_id, project_id, session=session)

    log.info(
        "membership.updated",
        project_id=str(project_id),
        user_id=str(user_id),
        fields=sorted(fields),
        updated_by=str(requester_id),
    )
    return membership


async def change_project_role(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    new_role: ProjectRole,
    requester_id: uuid.UUID,
    engine: AccessEngine,
    session: AsyncSession,
) -> ProjectMembership:
    check = await engine.resolver.can_change_project_role(
        user_id, project_id, new_role, requester_id, session, fresh=True
    )
    if not check.allowed:
        raise ForbiddenError(check.reason)

    membership = await _get_project_membership(project_id, user_id, session)
    old_role = membership.role
    membership.role = new_role
    session.add(membership)
    await session.flush()
    await engine.resolver.invalidate_cache(user_id, project_id, session=session)

    log.info(
        "membership.role_changed",
        project_id=str(project_id),
        user_id=str(user_id),
        old_role=old_role.value,
        new_role=new_role.value,
        changed_by=str(requester_id),
    )
    return membership


async def remove_project_member(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    requester_id: uuid.UUID,
    engine: AccessEngine,
    session: AsyncSession,
) -> None:
    await _get_project(project_id, session)
    await _require_capability(engine, requester_id, project_id, caps.MEMBERS_REMOVE, session)

    if await engine.resolver.has_inherited_access(user_id, project_id, session, fresh=True):
        raise ForbiddenError("Cannot remove inherited access. Remove organization role instead.")

    membership = await _get_project_membership(project_id, user_id, session)
    await session.delete(membership)
    await session.flush()
    await engine.resolver.invalidate_cache(user_id, project_id, session=session)

    log.info(
        "membership.removed",
        project_id=str(project_id),
        user_id=str(user_id),
        removed_by=str(requester_id),
    )


# ---------------------------------------------------------------------------
# Organization membership
# ---------------------------------------------------------------------------

async def _require_org_manager(
    organization_id: uuid.UUID, requester_id: uuid.UUID, action: str, session: AsyncSession
) -> OrganizationMembership:
    requester = await session.get(OrganizationMembership, (requester_id, organization_id))
    if requester is None:
        raise ForbiddenError("You are not a member of this organization")
    if requester.role not in INHERITING_ORG_ROLES:
        raise ForbiddenError(f"Only organization owners and admins can {action}")
    return requester


async def _owner_count(organization_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(OrganizationMembership)
        .where(OrganizationMembership.organization_id == organization_id)
        .where(OrganizationMembership.role == OrganizationRole.OWNER)
    )
    return result.scalar_one()


async def change_organization_role(
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    new_role: OrganizationRole,
    requester_id: uuid.UUID,
    engine: AccessEngine,
    session: AsyncSession,
) -> OrganizationMembership:
    """Change a member's org role. Affects inherited access to every org project."""
    requester = await _require_org_manager(organization_id, requester_id, "update member roles", session)

    if user_id == requester_id:
        raise InvalidStateError("You cannot change your own role")

    membership = await session.get(OrganizationMembership, (user_id, organization_id))
    if membership is None:
        raise NotFoundError("Organization membership not found")

    if new_role == OrganizationRole.OWNER and requester.role != OrganizationRole.OWNER:
        raise ForbiddenError("Only organization owners can create other owners")

    if (
        membership.role == OrganizationRole.OWNER
        and new_role != OrganizationRole.OWNER
        and await _owner_count(organization_id, session) == 1
    ):
        raise InvalidStateError(
            "Cannot demote the last organization owner. Promote another member first."
        )

    old_role = membership.role
    membership.role = new_role
    session.add(membership)
    await session.flush()
    await engine.resolver.invalidate_cache(user_id, session=session)

    log.info(
        "org_membership.role_changed",
        organization_id=str(organization_id),
        user_id=str(user_id),
        old_role=old_role.value,
        new_role=new_role.value,
        changed_by=str(requester_id),
    )
    return membership


async def remove_organization_member(
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    requester_id: uuid.UUID,
    engine: AccessEngine,
    session: AsyncSession,
    remove_from_projects: bool = False,
) -> None:
    await _require_org_manager(organization_id, requester_id, "remove members", session)

    if user_id == requester_id:
        raise InvalidStateError("You cannot remove yourself from the organization")

    membership = await session.get(OrganizationMembership, (user_id, organization_id))
    if membership is None:
        raise NotFoundError("Organization membership not found")

    if membership.role == OrganizationRole.OWNER and await _owner_count(organization_id, session) == 1:
        raise InvalidStateError("Cannot remove the last organization owner")

    if remove_from_projects:
        await session.execute(
            delete(ProjectMembership)
            .where(ProjectMembership.user_id == user_id)
            .where(
                ProjectMembership.project_id.in_(
                    select(Project.id).where(Project.organization_id == organization_id)
                )
            )
        )

    await session.delete(membership)
    await session.flush()
    await engine.resolver.invalidate_cache(user_id, session=session)

    log.info(
        "org_membership.removed",
        organization_id=str(organization_id),
        user_id=str(user_id),
        removed_by=str(requester_id),
        removed_from_projects=remove_from_projects,
    )
