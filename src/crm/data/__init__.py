"""Data layer -- backend boundary, tenant-scoped accessor, query cache, session.

Provides the abstract TableBackend interface with concrete implementations:
- PostgrestBackend: the hosted platform's REST dialect over httpx
- SqlBackend: SQLAlchemy async stand-in enforcing the same row-level policy

On top of a backend:
- TenantScopedAccessor: injects and enforces the tenant scope on every call
- QueryCache: cached collections with cancellable reconciliation fetches
- SessionManager: resolves the tenant at sign-in, clears it at sign-out
"""

from src.crm.data.accessor import (
    TENANT_COLUMN,
    TENANT_DEFINING_TABLES,
    TenantScopedAccessor,
)
from src.crm.data.backend import Filters, OrderBy, Row, TableBackend
from src.crm.data.cache import QueryCache, QueryKey
from src.crm.data.postgrest import PostgrestBackend
from src.crm.data.session import SessionManager
from src.crm.data.sql import SqlBackend

__all__ = [
    "Filters",
    "OrderBy",
    "PostgrestBackend",
    "QueryCache",
    "QueryKey",
    "Row",
    "SessionManager",
    "SqlBackend",
    "TENANT_COLUMN",
    "TENANT_DEFINING_TABLES",
    "TableBackend",
    "TenantScopedAccessor",
]
