"""Shared repository behaviour for tenant-owned entities.

A repository couples the tenant-scoped accessor with the query cache and the
notifier:
- reads go through the cache (one collection per (table, tenant, filters))
- every write is scoped by the session's tenant, emits the entity's French
  success or error notification, and invalidates the cached collections of
  its table

All methods take the TenantSession as first argument.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

import structlog
from pydantic import BaseModel

from src.crm.core.errors import CRMError
from src.crm.core.notifications import Notifier
from src.crm.core.tenant import TenantSession
from src.crm.data.accessor import TenantScopedAccessor
from src.crm.data.backend import OrderBy, Row
from src.crm.data.cache import QueryCache, QueryKey

logger = structlog.get_logger(__name__)

ReadT = TypeVar("ReadT", bound=BaseModel)

CREATE_FAILED = "Erreur lors de la création"
UPDATE_FAILED = "Erreur lors de la mise à jour"
DELETE_FAILED = "Erreur lors de la suppression"
MOVE_FAILED = "Erreur lors du déplacement"


@dataclass(frozen=True)
class EntityMessages:
    """Success notification titles of one entity kind."""

    created: str
    updated: str
    deleted: str


class EntityRepository(Generic[ReadT]):
    """Tenant-scoped CRUD over one table.

    Subclasses set ``table``, ``read_model`` and ``messages``; they may
    override ``default_order``/``columns`` and the ``_create_payload`` hook.
    """

    table: ClassVar[str]
    read_model: ClassVar[type[BaseModel]]
    messages: ClassVar[EntityMessages]
    default_order: ClassVar[OrderBy] = OrderBy("created_at", ascending=False)
    columns: ClassVar[str] = "*"
    create_failed: ClassVar[str] = CREATE_FAILED
    update_failed: ClassVar[str] = UPDATE_FAILED
    delete_failed: ClassVar[str] = DELETE_FAILED

    def __init__(
        self,
        accessor: TenantScopedAccessor,
        cache: QueryCache,
        notifier: Notifier,
    ) -> None:
        self._accessor = accessor
        self._cache = cache
        self._notifier = notifier

    @property
    def cache(self) -> QueryCache:
        return self._cache

    def query_key(
        self, session: TenantSession, filters: Mapping[str, Any] | None = None
    ) -> QueryKey:
        return QueryKey.build(self.table, session.tenant_id, filters)

    def _read(self, row: Row) -> ReadT:
        return self.read_model.model_validate(row)  # type: ignore[return-value]

    # ── Reads ───────────────────────────────────────────────────────────────

    async def fetch_rows(
        self,
        session: TenantSession,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        """Authoritative rows straight from the backend (no cache)."""
        return await self._accessor.fetch(
            session,
            self.table,
            columns=self.columns,
            filters=filters,
            order_by=order_by or self.default_order,
            limit=limit,
        )

    async def list(
        self,
        session: TenantSession,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[ReadT]:
        """Cached collection for the filter set, fetched on first use."""
        session.require_tenant()
        key = self.query_key(session, filters)
        rows = await self._cache.fetch(
            key,
            lambda: self.fetch_rows(session, filters, order_by=order_by, limit=limit),
        )
        return [self._read(row) for row in rows]

    async def get(self, session: TenantSession, entity_id: str) -> ReadT:
        """Single entity, NotFoundError if it is not visible to the tenant."""
        row = await self._accessor.fetch_one(session, self.table, entity_id)
        return self._read(row)

    # ── Writes ──────────────────────────────────────────────────────────────

    def _create_payload(self, session: TenantSession, data: BaseModel) -> Row:
        return data.model_dump(mode="json")

    async def create(self, session: TenantSession, data: BaseModel) -> ReadT:
        try:
            payload = self._create_payload(session, data)
            row = await self._accessor.insert(session, self.table, payload)
        except CRMError as exc:
            self._notifier.error(self.create_failed, exc.message)
            raise
        self._notifier.success(self._created_message(data))
        await self._cache.invalidate(self.table, session.tenant_id)
        return self._read(row)

    def _created_message(self, data: BaseModel) -> str:
        return self.messages.created

    async def update(self, session: TenantSession, entity_id: str, data: BaseModel) -> ReadT:
        """Write only the fields explicitly set on ``data``."""
        values = data.model_dump(mode="json", exclude_unset=True)
        row = await self._update_values(session, entity_id, values)
        self._notifier.success(self.messages.updated)
        await self._cache.invalidate(self.table, session.tenant_id)
        return self._read(row)

    async def _update_values(
        self,
        session: TenantSession,
        entity_id: str,
        values: Row,
        *,
        failure_title: str | None = None,
    ) -> Row:
        try:
            return await self._accessor.update(session, self.table, entity_id, values)
        except CRMError as exc:
            self._notifier.error(failure_title or self.update_failed, exc.message)
            raise

    async def delete(self, session: TenantSession, entity_id: str) -> None:
        try:
            await self._accessor.delete(session, self.table, entity_id)
        except CRMError as exc:
            self._notifier.error(self.delete_failed, exc.message)
            raise
        self._notifier.success(self.messages.deleted)
        await self._cache.invalidate(self.table, session.tenant_id)
