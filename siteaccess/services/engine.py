"""
Wiring for the access services that share one resolver and cache.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from siteaccess.core.config import Settings, get_settings
from siteaccess.core.metrics import MetricsCollector
from siteaccess.models.base import utcnow
from siteaccess.services.authorization import CapabilityService
from siteaccess.services.cache import RoleCache, build_role_cache
from siteaccess.services.expiration import ExpirationService
from siteaccess.services.resolver import RoleResolver


class AccessEngine:
    def __init__(
        self,
        cache: RoleCache,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        settings = settings or get_settings()
        self.settings = settings
        self.metrics: MetricsCollector = cache.metrics
        self.resolver = RoleResolver(
            cache,
            ttl_seconds=settings.role_cache_ttl_seconds,
            clock=clock,
        )
        self.capabilities = CapabilityService(self.resolver)
        self.expiration = ExpirationService(
            self.resolver,
            expiring_soon_days=settings.expiring_soon_days,
            final_notice_days=settings.final_notice_days,
        )

    @classmethod
    async def from_settings(cls, settings: Settings | None = None) -> AccessEngine:
        settings = settings or get_settings()
        cache = await build_role_cache(settings, MetricsCollector())
        return cls(cache, settings)
