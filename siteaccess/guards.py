"""
FastAPI dependencies for guarding project-scoped endpoints.

Authentication belongs to the host application: it must put the caller's id
on ``request.state.user_id`` (or override ``current_user_id``) and install an
engine with ``install_access_engine``.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from siteaccess.core.database import get_session
from siteaccess.core.errors import ForbiddenError, register_error_handlers
from siteaccess.schemas.roles import DenialReason, EffectiveRoleResult
from siteaccess.services.engine import AccessEngine


class AccessContext:
    """Container for the caller and the role that let them through."""

    def __init__(self, user_id: uuid.UUID, project_id: uuid.UUID, role: EffectiveRoleResult):
        self.user_id = user_id
        self.project_id = project_id
        self.role = role
        self.effective_role = role.effective_role
        self.source = role.source


def install_access_engine(app: FastAPI, engine: AccessEngine) -> None:
    app.state.access_engine = engine
    register_error_handlers(app)


async def get_access_engine(request: Request) -> AccessEngine:
    engine = getattr(request.app.state, "access_engine", None)
    if engine is None:
        raise RuntimeError("No AccessEngine installed; call install_access_engine(app, engine)")
    return engine


async def current_user_id(request: Request) -> uuid.UUID:
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


def require_capability(capability: str, scope: Callable[[Request], Any] | None = None):
    """Dependency factory: the caller must hold ``capability`` on the path's project.

    ``scope`` pulls the resource scope out of the request (path, query or
    headers); scope-limited roles are then only let through when their
    membership scope covers it.
    """

    async def dependency(
        request: Request,
        project_id: uuid.UUID,
        user_id: uuid.UUID = Depends(current_user_id),
        engine: AccessEngine = Depends(get_access_engine),
        session: AsyncSession = Depends(get_session),
    ) -> AccessContext:
        requested = scope(request) if scope is not None else None
        decision = await engine.capabilities.check(
            user_id, project_id, capability, session, scope=requested
        )
        if decision.reason == DenialReason.OUT_OF_SCOPE:
            raise ForbiddenError(f"Resource is outside your scope for {capability}")
        if not decision.allowed:
            raise ForbiddenError(f"Missing capability {capability} on this project")
        role = await engine.resolver.resolve(user_id, project_id, session)
        return AccessContext(user_id, project_id, role)

    return dependency
