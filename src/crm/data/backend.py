"""Tabular backend abstract base class -- the boundary to the hosted database.

Every backend (hosted REST endpoint, local SQL database) implements this ABC.
Calls always carry the TenantSession of the authenticated caller: the backend
is where row-level policy is enforced, the client never relies on its own
filters for isolation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from src.crm.core.tenant import TenantSession

Row = dict[str, Any]
Filters = Mapping[str, Any]


@dataclass(frozen=True)
class OrderBy:
    """Single-column ordering."""

    column: str
    ascending: bool = True


class TableBackend(ABC):
    """Abstract interface for generic tabular reads and writes.

    Methods:
        select: Rows matching equality filters, optionally ordered and limited.
        insert: Insert rows, return them as persisted.
        update: Update rows matching filters, return the affected rows.
        delete: Delete rows matching filters, return the removed rows.
    """

    @abstractmethod
    async def select(
        self,
        session: TenantSession,
        table: str,
        *,
        columns: str = "*",
        filters: Filters | None = None,
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        """Fetch rows visible to the session."""
        ...

    @abstractmethod
    async def insert(self, session: TenantSession, table: str, rows: list[Row]) -> list[Row]:
        """Insert rows, return the persisted rows."""
        ...

    @abstractmethod
    async def update(
        self, session: TenantSession, table: str, values: Row, filters: Filters
    ) -> list[Row]:
        """Update rows matching filters, return the affected rows."""
        ...

    @abstractmethod
    async def delete(self, session: TenantSession, table: str, filters: Filters) -> list[Row]:
        """Delete rows matching filters, return the removed rows."""
        ...
