"""
Effective role resolution.

A role is computed from three layers, in strict precedence: the user's
system role, their role in the project's organization, and an explicit
project membership. Each layer is a strategy; the first one that produces
a role wins and later layers are never consulted.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from siteaccess.core.database import after_commit
from siteaccess.core.errors import NotFoundError
from siteaccess.core.metrics import MetricsCollector
from siteaccess.models.base import ensure_utc, utcnow
from siteaccess.models.org_membership import OrganizationMembership
from siteaccess.models.organization import Organization
from siteaccess.models.project import Project
from siteaccess.models.project_membership import ProjectMembership
from siteaccess.models.user import User
from siteaccess.permissions.expiry import expiration_status
from siteaccess.permissions.hierarchy import TOP_PROJECT_ROLE, INHERITING_ORG_ROLES
from siteaccess.schemas.roles import (
    INHERITED_SOURCES,
    EffectiveRoleResult,
    InheritanceChain,
    InheritanceStep,
    OrganizationRole,
    ProjectAccess,
    ProjectMemberEntry,
    ProjectRole,
    RoleChangeValidation,
    RoleSource,
    SystemRole,
)
from siteaccess.services.cache import RoleCache

log = structlog.get_logger()

DEFAULT_TTL_SECONDS = 15 * 60

_UNSET: Any = object()

_ORG_ROLE_SOURCES = {
    OrganizationRole.OWNER: RoleSource.ORG_OWNER,
    OrganizationRole.ORG_ADMIN: RoleSource.ORG_ADMIN,
}


class ResolutionContext:
    """Lazily loads the rows a resolution needs; each is fetched at most once."""

    def __init__(self, user_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession, now: datetime) -> None:
        self.user_id = user_id
        self.project_id = project_id
        self.session = session
        self.now = now
        self._user = _UNSET
        self._project = _UNSET
        self._organization = _UNSET
        self._org_membership = _UNSET
        self._project_membership = _UNSET

    async def user(self) -> User | None:
        if self._user is _UNSET:
            self._user = await self.session.get(User, self.user_id)
        return self._user

    async def project(self) -> Project | None:
        if self._project is _UNSET:
            self._project = await self.session.get(Project, self.project_id)
        return self._project

    async def organization(self) -> Organization | None:
        if self._organization is _UNSET:
            project = await self.project()
            self._organization = (
                await self.session.get(Organization, project.organization_id) if project else None
            )
        return self._organization

    async def org_membership(self) -> OrganizationMembership | None:
        if self._org_membership is _UNSET:
            project = await self.project()
            self._org_membership = (
                await self.session.get(OrganizationMembership, (self.user_id, project.organization_id))
                if project
                else None
            )
        return self._org_membership

    async def project_membership(self) -> ProjectMembership | None:
        if self._project_membership is _UNSET:
            self._project_membership = await self.session.get(
                ProjectMembership, (self.user_id, self.project_id)
            )
        return self._project_membership

    async def org_context(self) -> dict[str, Any]:
        """Organization fields shared by every result for this project."""
        organization = await self.organization()
        if organization is None:
            return {}
        membership = await self.org_membership()
        return {
            "organization_id": organization.id,
            "organization_name": organization.name,
            "organization_role": membership.role if membership else None,
        }


class ResolutionStrategy(ABC):
    source: RoleSource

    @abstractmethod
    async def try_resolve(self, ctx: ResolutionContext) -> EffectiveRoleResult | None:
        """Return a result when this layer grants access, otherwise None."""


class SystemAdminStrategy(ResolutionStrategy):
    source = RoleSource.SYSTEM_ADMIN

    async def try_resolve(self, ctx):
        user = await ctx.user()
        if user is None or not user.is_system_admin:
            return None
        return EffectiveRoleResult(
            effective_role=TOP_PROJECT_ROLE,
            source=self.source,
            is_inherited=True,
        )


class OrganizationRoleStrategy(ResolutionStrategy):
    def __init__(self, org_role: OrganizationRole) -> None:
        self.org_role = org_role
        self.source = _ORG_ROLE_SOURCES[org_role]

    async def try_resolve(self, ctx):
        membership = await ctx.org_membership()
        if membership is None or membership.role != self.org_role:
            return None
        return EffectiveRoleResult(
            effective_role=TOP_PROJECT_ROLE,
            source=self.source,
            is_inherited=True,
            **await ctx.org_context(),
        )


class ExplicitMembershipStrategy(ResolutionStrategy):
    source = RoleSource.EXPLICIT

    async def try_resolve(self, ctx):
        if await ctx.project() is None:
            return None
        membership = await ctx.project_membership()
        if membership is None or membership.is_expired_at(ctx.now):
            return None
        return EffectiveRoleResult(
            effective_role=membership.role,
            source=self.source,
            is_inherited=False,
            project_role=membership.role,
            scope=membership.scope,
            expires_at=membership.expires_at_utc,
            **await ctx.org_context(),
        )


DEFAULT_STRATEGIES: tuple[ResolutionStrategy, ...] = (
    SystemAdminStrategy(),
    OrganizationRoleStrategy(OrganizationRole.OWNER),
    OrganizationRoleStrategy(OrganizationRole.ORG_ADMIN),
    ExplicitMembershipStrategy(),
)


class RoleResolver:
    """Resolves and caches effective roles for (user, project) pairs."""

    def __init__(
        self,
        cache: RoleCache,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        strategies: Sequence[ResolutionStrategy] = DEFAULT_STRATEGIES,
        clock: Callable[[], datetime] = utcnow,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.strategies = tuple(strategies)
        self.clock = clock
        self.metrics = metrics or cache.metrics

    # -- resolution ---------------------------------------------------------

    async def resolve(
        self, user_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession
    ) -> EffectiveRoleResult:
        now = self.clock()
        cached = await self.cache.get(user_id, project_id)
        if cached is not None and not _outlived(cached, now):
            return cached

        generation = await self.cache.generation(user_id)
        result = await self.resolve_fresh(user_id, project_id, session, now=now)
        await self.cache.set(user_id, project_id, result, self._ttl_for(result, now), generation)
        return result

    async def resolve_fresh(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        session: AsyncSession,
        now: datetime | None = None,
    ) -> EffectiveRoleResult:
        """Compute the role from persistence, bypassing the cache."""
        ctx = ResolutionContext(user_id, project_id, session, now or self.clock())
        for strategy in self.strategies:
            result = await strategy.try_resolve(ctx)
            if result is not None:
                break
        else:
            result = EffectiveRoleResult(**await ctx.org_context())

        self.metrics.inc(f"role_resolutions_{result.source.value}_total")
        log.debug(
            "role.resolved",
            user_id=str(user_id),
            project_id=str(project_id),
            role=result.effective_role.value if result.effective_role else None,
            source=result.source.value,
        )
        return result

    async def lookup(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        session: AsyncSession,
        fresh: bool = False,
    ) -> EffectiveRoleResult:
        """``resolve``, or ``resolve_fresh`` when the caller is about to write."""
        if fresh:
            return await self.resolve_fresh(user_id, project_id, session)
        return await self.resolve(user_id, project_id, session)

    def _ttl_for(self, result: EffectiveRoleResult, now: datetime) -> float:
        if result.expires_at is None:
            return self.ttl_seconds
        return min(self.ttl_seconds, (result.expires_at - now).total_seconds())

    # -- derived queries ----------------------------------------------------

    async def has_inherited_access(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        session: AsyncSession,
        fresh: bool = False,
    ) -> bool:
        result = await self.lookup(user_id, project_id, session, fresh=fresh)
        return result.is_inherited and result.has_access

    async def can_change_project_role(
        self,
        target_user_id: uuid.UUID,
        project_id: uuid.UUID,
        new_role: ProjectRole,
        requester_id: uuid.UUID,
        session: AsyncSession,
        fresh: bool = False,
    ) -> RoleChangeValidation:
        target = await self.lookup(target_user_id, project_id, session, fresh=fresh)

        if target.source == RoleSource.SYSTEM_ADMIN:
            return RoleChangeValidation(
                allowed=False, reason="Cannot change role for system administrators"
            )
        if target.source == RoleSource.ORG_OWNER:
            return RoleChangeValidation(
                allowed=False,
                reason="Cannot change role for organization owners. They automatically have "
                "PROJECT_ADMIN access to all organization projects.",
            )
        if target.source == RoleSource.ORG_ADMIN:
            return RoleChangeValidation(
                allowed=False,
                reason="Cannot change role for organization admins. They automatically have "
                "PROJECT_ADMIN access to all organization projects.",
            )
        if target.source != RoleSource.EXPLICIT:
            return RoleChangeValidation(
                allowed=False, reason="User does not have explicit project membership"
            )

        requester = await self.lookup(requester_id, project_id, session, fresh=fresh)
        if requester.effective_role != TOP_PROJECT_ROLE:
            return RoleChangeValidation(
                allowed=False, reason="You must be a PROJECT_ADMIN to change user roles"
            )
        return RoleChangeValidation(allowed=True)

    async def get_inheritance_chain(
        self, user_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession
    ) -> InheritanceChain:
        """Human-readable trace of how the role was derived (UI and debugging only)."""
        result = await self.resolve(user_id, project_id, session)
        steps: list[InheritanceStep] = []

        if result.source == RoleSource.SYSTEM_ADMIN:
            steps.append(
                InheritanceStep(
                    level="system",
                    type="system_role",
                    role=SystemRole.SYSTEM_ADMIN.value,
                    source=result.source,
                    description="System administrator has PROJECT_ADMIN access to every project",
                )
            )
        elif result.source in (RoleSource.ORG_OWNER, RoleSource.ORG_ADMIN):
            steps.append(
                InheritanceStep(
                    level="organization",
                    type="organization_role",
                    role=result.organization_role.value,
                    source=result.source,
                    description=f"{result.organization_role.value} of {result.organization_name}",
                )
            )
            steps.append(
                InheritanceStep(
                    level="project",
                    type="inherited_role",
                    role=TOP_PROJECT_ROLE.value,
                    source=result.source,
                    description=f"Inherited {TOP_PROJECT_ROLE.value} from organization role",
                )
            )
        else:
            if result.organization_role is not None:
                steps.append(
                    InheritanceStep(
                        level="organization",
                        type="organization_role",
                        role=result.organization_role.value,
                        source=RoleSource.NONE,
                        description=f"{result.organization_role.value} of {result.organization_name} "
                        "(no automatic project access)",
                    )
                )
            if result.source == RoleSource.EXPLICIT:
                steps.append(
                    InheritanceStep(
                        level="project",
                        type="explicit_role",
                        role=result.effective_role.value,
                        source=result.source,
                        description="Explicit project membership",
                    )
                )

        return InheritanceChain(
            user_id=user_id,
            project_id=project_id,
            effective_role=result.effective_role,
            source=result.source,
            chain=steps,
        )

    async def get_user_accessible_projects(
        self,
        user_id: uuid.UUID,
        session: AsyncSession,
        organization_id: uuid.UUID | None = None,
    ) -> list[ProjectAccess]:
        """Every project the user can reach right now, inherited access first."""
        user = await session.get(User, user_id)
        if user is None:
            return []
        now = self.clock()
        access: dict[uuid.UUID, ProjectAccess] = {}

        query = select(Project, Organization).join(Organization, Organization.id == Project.organization_id)
        if organization_id is not None:
            query = query.where(Project.organization_id == organization_id)

        if user.system_role == SystemRole.SYSTEM_ADMIN:
            rows = (await session.execute(query)).all()
            for project, org in rows:
                access[project.id] = _project_access(project, org, TOP_PROJECT_ROLE, RoleSource.SYSTEM_ADMIN)
        else:
            inherited = await session.execute(
                query.add_columns(OrganizationMembership.role)
                .join(
                    OrganizationMembership,
                    OrganizationMembership.organization_id == Project.organization_id,
                )
                .where(OrganizationMembership.user_id == user_id)
                .where(OrganizationMembership.role.in_(list(INHERITING_ORG_ROLES)))
            )
            for project, org, org_role in inherited.all():
                access[project.id] = _project_access(project, org, TOP_PROJECT_ROLE, _ORG_ROLE_SOURCES[org_role])

            explicit = await session.execute(
                query.add_columns(ProjectMembership)
                .join(ProjectMembership, ProjectMembership.project_id == Project.id)
                .where(ProjectMembership.user_id == user_id)
            )
            for project, org, membership in explicit.all():
                if project.id in access or membership.is_expired_at(now):
                    continue
                access[project.id] = _project_access(
                    project,
                    org,
                    membership.role,
                    RoleSource.EXPLICIT,
                    scope=membership.scope,
                    expires_at=membership.expires_at_utc,
                )

        return sorted(access.values(), key=lambda a: (a.organization_name, a.project_name))

    async def get_project_members(
        self,
        project_id: uuid.UUID,
        session: AsyncSession,
        include_inherited: bool = False,
    ) -> list[ProjectMemberEntry]:
        """Explicit members with their expiration status, optionally plus inherited admins.

        An explicit row shadowed by an inheriting organization role is reported
        with the inherited role and source.
        """
        project = await session.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project not found")
        now = self.clock()

        org_roles = dict(
            (
                await session.execute(
                    select(OrganizationMembership.user_id, OrganizationMembership.role).where(
                        OrganizationMembership.organization_id == project.organization_id
                    )
                )
            ).all()
        )

        rows = await session.execute(
            select(ProjectMembership, User)
            .join(User, User.id == ProjectMembership.user_id)
            .where(ProjectMembership.project_id == project_id)
        )
        entries: list[ProjectMemberEntry] = []
        seen: set[uuid.UUID] = set()
        for membership, user in rows.all():
            seen.add(user.id)
            org_role = org_roles.get(user.id)
            if user.system_role == SystemRole.SYSTEM_ADMIN:
                role, source = TOP_PROJECT_ROLE, RoleSource.SYSTEM_ADMIN
            elif org_role in INHERITING_ORG_ROLES:
                role, source = TOP_PROJECT_ROLE, _ORG_ROLE_SOURCES[org_role]
            else:
                role, source = membership.role, RoleSource.EXPLICIT
            entries.append(
                ProjectMemberEntry(
                    user_id=user.id,
                    email=user.email,
                    full_name=user.full_name,
                    role=role,
                    source=source,
                    is_inherited=source in INHERITED_SOURCES,
                    organization_role=org_role,
                    scope=membership.scope,
                    expires_at=membership.expires_at_utc,
                    expiration_status=expiration_status(membership.expires_at, now),
                )
            )

        if include_inherited:
            inherited_ids = [
                uid for uid, role in org_roles.items() if role in INHERITING_ORG_ROLES and uid not in seen
            ]
            if inherited_ids:
                users = (await session.execute(select(User).where(User.id.in_(inherited_ids)))).scalars()
                for user in users:
                    org_role = org_roles[user.id]
                    entries.append(
                        ProjectMemberEntry(
                            user_id=user.id,
                            email=user.email,
                            full_name=user.full_name,
                            role=TOP_PROJECT_ROLE,
                            source=_ORG_ROLE_SOURCES[org_role],
                            is_inherited=True,
                            organization_role=org_role,
                        )
                    )

        return sorted(entries, key=lambda e: e.email)

    # -- invalidation hooks -------------------------------------------------

    async def invalidate_cache(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID | None = None,
        session: AsyncSession | None = None,
    ) -> None:
        """Drop cached roles now and, when a session is given, again after it commits.

        The second pass removes anything a concurrent reader cached from the
        pre-commit rows.
        """
        await self.cache.invalidate(user_id, project_id)
        if session is not None:
            after_commit(session, lambda: self.cache.invalidate(user_id, project_id))
        log.info(
            "role_cache.invalidated",
            user_id=str(user_id),
            project_id=str(project_id) if project_id else None,
        )

    async def invalidate_organization_cache(self, organization_id: uuid.UUID, session: AsyncSession) -> int:
        """Invalidate every user whose access to the organization's projects may change.

        Returns the number of users invalidated.
        """
        org_members = await session.execute(
            select(OrganizationMembership.user_id).where(
                OrganizationMembership.organization_id == organization_id
            )
        )
        project_members = await session.execute(
            select(ProjectMembership.user_id)
            .join(Project, Project.id == ProjectMembership.project_id)
            .where(Project.organization_id == organization_id)
        )
        user_ids = set(org_members.scalars().all()) | set(project_members.scalars().all())
        for user_id in user_ids:
            await self.cache.invalidate(user_id)
        after_commit(session, lambda: self._invalidate_users(user_ids))
        log.info("role_cache.organization_invalidated", organization_id=str(organization_id), users=len(user_ids))
        return len(user_ids)

    async def _invalidate_users(self, user_ids: set[uuid.UUID]) -> None:
        for user_id in user_ids:
            await self.cache.invalidate(user_id)

def _outlived(result: EffectiveRoleResult, now: datetime) -> bool:
    expires_at = ensure_utc(result.expires_at)
    return expires_at is not None and expires_at < now


def _project_access(
    project: Project,
    org: Organization,
    role: ProjectRole,
    source: RoleSource,
    scope: Any = None,
    expires_at: datetime | None = None,
) -> ProjectAccess:
    return ProjectAccess(
        project_id=project.id,
        project_name=project.name,
        organization_id=org.id,
        organization_name=org.name,
        effective_role=role,
        source=source,
        is_inherited=source in INHERITED_SOURCES,
        scope=scope,
        expires_at=expires_at,
    )
