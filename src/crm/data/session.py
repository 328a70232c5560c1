"""Session lifecycle: resolve the tenant at sign-in, drop its cache at sign-out."""

from __future__ import annotations

import structlog

from src.crm.core.errors import TenantMissingError
from src.crm.core.tenant import TenantSession
from src.crm.data.accessor import TenantScopedAccessor
from src.crm.data.backend import Row
from src.crm.data.cache import QueryCache

logger = structlog.get_logger(__name__)


class SessionManager:
    """Holds the current TenantSession.

    The session is established once per sign-in from the user's profile row
    and is never reused across tenants: sign_out() forgets it and drops every
    cached collection of its tenant.
    """

    def __init__(self, accessor: TenantScopedAccessor, cache: QueryCache) -> None:
        self._accessor = accessor
        self._cache = cache
        self._current: TenantSession | None = None

    @property
    def current(self) -> TenantSession:
        if self._current is None:
            raise TenantMissingError()
        return self._current

    @property
    def is_authenticated(self) -> bool:
        return self._current is not None

    async def establish(self, user_id: str, access_token: str) -> TenantSession:
        """Start a session for an authenticated user.

        The tenant is the ``organization_id`` of the user's profile. A user
        without a profile (or without an organization) gets a session with no
        tenant; every tenant-scoped call then fails with TenantMissingError.
        """
        if self._current is not None and self._current.user_id != user_id:
            self.sign_out()

        anonymous = TenantSession(user_id=user_id, access_token=access_token)
        rows = await self._accessor.fetch(
            anonymous, "profiles", filters={"id": user_id}, limit=1
        )
        tenant_id = rows[0].get("organization_id") if rows else None
        self._current = anonymous.with_tenant(tenant_id)

        if tenant_id is None:
            logger.warning("session.tenant_missing", user_id=user_id)
        else:
            logger.info("session.established", user_id=user_id, tenant_id=tenant_id)
        return self._current

    async def get_profile(self) -> Row:
        session = self.current
        return await self._accessor.fetch_one(session, "profiles", session.user_id)

    async def get_organization(self) -> Row:
        session = self.current
        return await self._accessor.fetch_one(
            session, "organizations", session.require_tenant()
        )

    def sign_out(self) -> None:
        if self._current is None:
            return
        tenant_id = self._current.tenant_id
        self._cache.clear_tenant(tenant_id)
        logger.info("session.signed_out", user_id=self._current.user_id, tenant_id=tenant_id)
        self._current = None
