"""
Capability checks: effective role + expiration + scope -> allow/deny.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from siteaccess.permissions.capabilities import role_capabilities
from siteaccess.permissions.hierarchy import is_scope_limited
from siteaccess.permissions.matcher import has_capability_in
from siteaccess.permissions.scope import scope_allows
from siteaccess.schemas.roles import AccessDecision, DenialReason, EffectiveRoleResult
from siteaccess.services.resolver import RoleResolver

log = structlog.get_logger()


class CapabilityService:
    def __init__(self, resolver: RoleResolver) -> None:
        self.resolver = resolver

    def _access_denial(self, role: EffectiveRoleResult) -> DenialReason | None:
        if not role.has_access:
            return DenialReason.NO_ACCESS
        if role.expires_at is not None and role.expires_at < self.resolver.clock():
            return DenialReason.EXPIRED
        return None

    def _decide(
        self, role: EffectiveRoleResult, capability: str, scope: Any
    ) -> AccessDecision:
        decision = {
            "capability": capability,
            "effective_role": role.effective_role,
            "source": role.source,
        }
        denial = self._access_denial(role)
        if denial is not None:
            return AccessDecision(allowed=False, reason=denial, **decision)
        if not has_capability_in(role_capabilities(role.effective_role), capability):
            return AccessDecision(allowed=False, reason=DenialReason.NOT_GRANTED, **decision)
        # Scope narrows only scope-limited roles; everyone else ignores it.
        if scope is not None and is_scope_limited(role.effective_role):
            if not scope_allows(role.scope, scope):
                return AccessDecision(allowed=False, reason=DenialReason.OUT_OF_SCOPE, **decision)
        return AccessDecision(allowed=True, **decision)

    async def check(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        capability: str,
        session: AsyncSession,
        scope: Any = None,
        fresh: bool = False,
    ) -> AccessDecision:
        """Decide one capability. ``fresh`` skips the role cache for write paths."""
        role = await self.resolver.lookup(user_id, project_id, session, fresh=fresh)
        decision = self._decide(role, capability, scope)
        self.resolver.metrics.inc(
            "access_decisions_allowed_total" if decision.allowed else "access_decisions_denied_total"
        )
        if not decision.allowed:
            log.debug(
                "access.denied",
                user_id=str(user_id),
                project_id=str(project_id),
                capability=capability,
                reason=decision.reason.value,
            )
        return decision

    async def has_capability(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        capability: str,
        session: AsyncSession,
        scope: Any = None,
        fresh: bool = False,
    ) -> bool:
        decision = await self.check(user_id, project_id, capability, session, scope=scope, fresh=fresh)
        return decision.allowed

    async def has_capabilities(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        capabilities: Iterable[str],
        session: AsyncSession,
        scope: Any = None,
    ) -> dict[str, bool]:
        """Batch form: one resolution shared by every capability."""
        role = await self.resolver.resolve(user_id, project_id, session)
        return {c: self._decide(role, c, scope).allowed for c in capabilities}

    async def get_capabilities(
        self, user_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession
    ) -> list[str]:
        role = await self.resolver.resolve(user_id, project_id, session)
        if self._access_denial(role) is not None:
            return []
        return list(role_capabilities(role.effective_role))
