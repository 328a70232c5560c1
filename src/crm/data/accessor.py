"""Organization-scoped data accessor.

Every read and write of a tenant-owned table goes through here. The accessor
injects ``organization_id = session.tenant_id`` into filters and insert
payloads, and scopes every update and delete by (id, tenant id) jointly. It
never relies on these filters for isolation (the backend enforces row-level
policy); they make the client's intent explicit and turn a policy-filtered
no-op into a PermissionDeniedError.

``profiles`` and ``organizations`` define the tenants themselves and bypass
the tenant filter.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.crm.core.errors import (
    CRMError,
    NotFoundError,
    PermissionDeniedError,
    SINGLE_ROW_MISMATCH,
)
from src.crm.core.notifications import Notifier
from src.crm.core.tenant import TenantSession
from src.crm.data.backend import Filters, OrderBy, Row, TableBackend

logger = structlog.get_logger(__name__)

TENANT_COLUMN = "organization_id"
TENANT_DEFINING_TABLES = frozenset({"profiles", "organizations"})


def _clean_filters(filters: Filters | None) -> dict[str, Any]:
    """Drop filters whose value is None (an unset form field, not ``IS NULL``)."""
    return {k: v for k, v in (filters or {}).items() if v is not None}


class TenantScopedAccessor:
    """Tenant-scoped select/insert/update/delete over a TableBackend.

    Args:
        backend: The table backend (hosted REST or local SQL).
        notifier: Sink for the "access denied" notification on reads.
    """

    def __init__(self, backend: TableBackend, notifier: Notifier) -> None:
        self._backend = backend
        self._notifier = notifier

    @property
    def backend(self) -> TableBackend:
        return self._backend

    # ── Reads ───────────────────────────────────────────────────────────────

    async def fetch(
        self,
        session: TenantSession,
        table: str,
        *,
        columns: str = "*",
        filters: Filters | None = None,
        order_by: OrderBy | None = None,
        limit: int | None = None,
        single: bool = False,
        skip_tenant_filter: bool = False,
    ) -> list[Row]:
        """Rows of ``table`` visible to the session's tenant.

        Args:
            session: Authenticated caller.
            table: Table name.
            columns: Column selection in the backend's select syntax.
            filters: Equality filters; None values are ignored.
            order_by: Optional ordering.
            limit: Optional row limit.
            single: Require exactly one row, else NotFoundError.
            skip_tenant_filter: Do not inject the tenant filter. Implied for
                the tenant-defining tables.

        Raises:
            TenantMissingError: No tenant on the session (before any backend call).
            PermissionDeniedError: Policy rejection; the user is notified first.
            NotFoundError: ``single`` was requested and zero or many rows matched.
            TransportError: Backend unreachable.
        """
        scoped = _clean_filters(filters)
        if not skip_tenant_filter and table not in TENANT_DEFINING_TABLES:
            scoped[TENANT_COLUMN] = session.require_tenant()

        try:
            rows = await self._backend.select(
                session,
                table,
                columns=columns,
                filters=scoped,
                order_by=order_by,
                limit=limit,
            )
        except PermissionDeniedError:
            logger.warning(
                "accessor.access_denied",
                table=table,
                tenant_id=session.tenant_id,
            )
            self._notifier.error("Accès refusé", "Vous n'avez pas accès à ces données.")
            raise
        except CRMError as exc:
            logger.error(
                "accessor.fetch_failed",
                table=table,
                tenant_id=session.tenant_id,
                error=exc.message,
                code=exc.code,
            )
            raise

        if single and len(rows) != 1:
            raise NotFoundError(code=SINGLE_ROW_MISMATCH)
        return rows

    async def fetch_one(
        self,
        session: TenantSession,
        table: str,
        entity_id: str,
        *,
        columns: str = "*",
        skip_tenant_filter: bool = False,
    ) -> Row:
        """Single row by id, NotFoundError if absent or not visible."""
        rows = await self.fetch(
            session,
            table,
            columns=columns,
            filters={"id": entity_id},
            single=True,
            skip_tenant_filter=skip_tenant_filter,
        )
        return rows[0]

    # ── Writes ──────────────────────────────────────────────────────────────

    async def insert(self, session: TenantSession, table: str, values: Row) -> Row:
        """Insert one row owned by the session's tenant and return it as persisted."""
        payload = dict(values)
        if table not in TENANT_DEFINING_TABLES:
            payload[TENANT_COLUMN] = session.require_tenant()

        rows = await self._backend.insert(session, table, [payload])
        logger.info(
            "accessor.inserted",
            table=table,
            tenant_id=session.tenant_id,
            entity_id=rows[0].get("id") if rows else None,
        )
        return rows[0]

    async def update(
        self, session: TenantSession, table: str, entity_id: str, values: Row
    ) -> Row:
        """Update one row scoped by (id, tenant id) and return the updated row.

        Raises:
            PermissionDeniedError: No row of this tenant has that id.
        """
        scope = self._mutation_scope(session, table, entity_id)
        rows = await self._backend.update(session, table, dict(values), scope)
        if not rows:
            self._reject("update", session, table, entity_id)
        logger.info(
            "accessor.updated",
            table=table,
            tenant_id=session.tenant_id,
            entity_id=entity_id,
            fields=sorted(values),
        )
        return rows[0]

    async def delete(self, session: TenantSession, table: str, entity_id: str) -> Row:
        """Delete one row scoped by (id, tenant id) and return the removed row.

        Raises:
            PermissionDeniedError: No row of this tenant has that id.
        """
        scope = self._mutation_scope(session, table, entity_id)
        rows = await self._backend.delete(session, table, scope)
        if not rows:
            self._reject("delete", session, table, entity_id)
        logger.info(
            "accessor.deleted",
            table=table,
            tenant_id=session.tenant_id,
            entity_id=entity_id,
        )
        return rows[0]

    def _mutation_scope(
        self, session: TenantSession, table: str, entity_id: str
    ) -> dict[str, Any]:
        scope: dict[str, Any] = {"id": entity_id}
        if table not in TENANT_DEFINING_TABLES:
            scope[TENANT_COLUMN] = session.require_tenant()
        return scope

    @staticmethod
    def _reject(operation: str, session: TenantSession, table: str, entity_id: str) -> None:
        # Under row-level policy a foreign id and a missing id look the same.
        logger.warning(
            "accessor.mutation_rejected",
            operation=operation,
            table=table,
            tenant_id=session.tenant_id,
            entity_id=entity_id,
        )
        raise PermissionDeniedError(code="42501")
