"""Tenant session value threaded explicitly into every data access call.

A TenantSession is established at sign-in, replaced (never mutated) when the
user's organization is resolved, and discarded at sign-out. Nothing reads the
tenant from ambient global state: the accessor, repositories and stage engine
all receive the session they act for.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from src.crm.core.errors import TenantMissingError


@dataclass(frozen=True)
class TenantSession:
    """Immutable authenticated-caller context.

    Attributes:
        user_id: Authenticated user (profile) id.
        access_token: Bearer token forwarded to the hosted backend.
        tenant_id: Owning organization id, None until resolved.
    """

    user_id: str
    access_token: str
    tenant_id: str | None = None

    def require_tenant(self) -> str:
        """Return the tenant id or fail fast with TenantMissingError."""
        if not self.tenant_id:
            raise TenantMissingError()
        return self.tenant_id

    def with_tenant(self, tenant_id: str | None) -> TenantSession:
        return replace(self, tenant_id=tenant_id)
