"""SQL backend -- TableBackend over SQLAlchemy async with row-level policy.

Stands in for the hosted platform when running locally or under test. It
enforces the same policies the platform's row-level security does, from the
caller's TenantSession rather than from client-supplied filters:

- Tenant-owned tables: rows are visible and mutable only where
  ``organization_id`` equals the session tenant. An update or delete aimed at
  another tenant's row matches nothing (it is invisible), exactly like RLS.
- Inserts whose ``organization_id`` is not the session tenant are rejected
  with PermissionDeniedError (the WITH CHECK clause).
- ``organizations``: only the session's own organization is visible.
- ``profiles``: own profile plus profiles of the same organization.
- ``email_templates``: predefined templates cannot be deleted, and only their
  usage counter may be updated.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import Table, and_, delete, insert, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from src.crm.core.errors import CRMError, PermissionDeniedError, TransportError
from src.crm.core.tenant import TenantSession
from src.crm.data.backend import Filters, OrderBy, Row, TableBackend
from src.crm.data.models import Base

logger = structlog.get_logger(__name__)

TENANT_COLUMN = "organization_id"

# SQLSTATE class 23 codes, matched against driver messages that carry none
_CONSTRAINT_CODES = (
    ("UNIQUE", "23505"),
    ("NOT NULL", "23502"),
    ("FOREIGN KEY", "23503"),
    ("CHECK", "23514"),
)


def _integrity_error(exc: IntegrityError) -> CRMError:
    """CRMError carrying the SQLSTATE of a constraint violation, None if unknown."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if not code:
        message = str(orig).upper()
        code = next((state for marker, state in _CONSTRAINT_CODES if marker in message), None)
    return CRMError(str(orig), code=code)


def _to_python(column_type: Any, value: Any) -> Any:
    """Coerce JSON-shaped values (ISO strings, enums) to what the column expects."""
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    try:
        python_type = column_type.python_type
    except NotImplementedError:
        return value
    if python_type is datetime and isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    if python_type is date and isinstance(value, str):
        return date.fromisoformat(value[:10])
    return value


def _from_python(value: Any) -> Any:
    # SQLite drops tzinfo; everything is stored in UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlBackend(TableBackend):
    """TableBackend backed by a SQLAlchemy async engine.

    Args:
        engine: Async engine (``sqlite+aiosqlite`` or ``postgresql+asyncpg``).
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> SqlBackend:
        return cls(create_async_engine(database_url, echo=False))

    async def create_all(self) -> None:
        """Create every CRM table if missing."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    # ── Policy ──────────────────────────────────────────────────────────────

    def _table(self, name: str) -> Table:
        table = Base.metadata.tables.get(name)
        if table is None:
            raise CRMError(f"Table inconnue: {name}", code="42P01")
        return table

    def _visibility(self, session: TenantSession, table: Table) -> Any:
        """Row-level policy predicate for the session."""
        if table.name == "organizations":
            return table.c.id == session.tenant_id
        if table.name == "profiles":
            if session.tenant_id is None:
                return table.c.id == session.user_id
            return or_(
                table.c.id == session.user_id,
                table.c.organization_id == session.tenant_id,
            )
        return table.c[TENANT_COLUMN] == session.tenant_id

    def _mutation_guard(
        self, session: TenantSession, table: Table, changes: Row | None = None
    ) -> Any:
        predicate = self._visibility(session, table)
        # Predefined templates only accept usage counter updates.
        if table.name == "email_templates" and (
            changes is None or set(changes) - {"usage_count", "updated_at"}
        ):
            predicate = and_(predicate, table.c.is_predefined.is_(False))
        return predicate

    def _where(self, table: Table, filters: Filters | None) -> list[Any]:
        clauses = []
        for column, value in (filters or {}).items():
            if column not in table.c:
                raise CRMError(f"Colonne inconnue: {table.name}.{column}", code="42703")
            col = table.c[column]
            value = _to_python(col.type, value)
            clauses.append(col.is_(None) if value is None else col == value)
        return clauses

    def _values(self, table: Table, values: Row) -> Row:
        return {
            key: _to_python(table.c[key].type, value)
            for key, value in values.items()
            if key in table.c
        }

    @staticmethod
    def _row(mapping: Any) -> Row:
        return {key: _from_python(value) for key, value in dict(mapping).items()}

    # ── TableBackend ────────────────────────────────────────────────────────

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
        # Embedded relations of the REST dialect are not resolved here; base
        # columns are always returned.
        tbl = self._table(table)
        stmt = select(tbl).where(self._visibility(session, tbl), *self._where(tbl, filters))
        if order_by is not None:
            col = tbl.c[order_by.column]
            stmt = stmt.order_by(col.asc() if order_by.ascending else col.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._sessions() as db:
            try:
                result = await db.execute(stmt)
            except DBAPIError as exc:
                raise TransportError(str(exc.orig)) from exc
            return [self._row(m) for m in result.mappings().all()]

    async def insert(self, session: TenantSession, table: str, rows: list[Row]) -> list[Row]:
        tbl = self._table(table)
        prepared: list[Row] = []
        for row in rows:
            values = self._values(tbl, row)
            if TENANT_COLUMN in tbl.c and table != "profiles":
                if values.get(TENANT_COLUMN) != session.tenant_id:
                    logger.warning(
                        "sql_backend.insert_rejected",
                        table=table,
                        tenant_id=session.tenant_id,
                    )
                    raise PermissionDeniedError(
                        f'new row violates row-level security policy for table "{table}"',
                        code="42501",
                    )
            if values.get("id") is None and tbl.c.id.default is not None:
                values["id"] = tbl.c.id.default.arg(None)
            prepared.append(values)

        ids = [values.get("id") for values in prepared]
        async with self._sessions() as db:
            try:
                for values in prepared:
                    await db.execute(insert(tbl).values(**values))
                await db.commit()
                result = await db.execute(select(tbl).where(tbl.c.id.in_(ids)))
            except IntegrityError as exc:
                raise _integrity_error(exc) from exc
            except DBAPIError as exc:
                raise TransportError(str(exc.orig)) from exc
            by_id = {m["id"]: self._row(m) for m in result.mappings().all()}
        return [by_id[row_id] for row_id in ids]

    async def update(
        self, session: TenantSession, table: str, values: Row, filters: Filters
    ) -> list[Row]:
        tbl = self._table(table)
        changes = self._values(tbl, values)
        changes.pop("id", None)
        changes.pop(TENANT_COLUMN, None)
        if "updated_at" in tbl.c:
            changes["updated_at"] = datetime.now(timezone.utc)
        predicate = and_(self._mutation_guard(session, tbl, changes), *self._where(tbl, filters))

        async with self._sessions() as db:
            try:
                result = await db.execute(select(tbl.c.id).where(predicate))
                ids = [r[0] for r in result.all()]
                if ids:
                    await db.execute(update(tbl).where(tbl.c.id.in_(ids)).values(**changes))
                    await db.commit()
                    refreshed = await db.execute(select(tbl).where(tbl.c.id.in_(ids)))
                    return [self._row(m) for m in refreshed.mappings().all()]
            except IntegrityError as exc:
                raise _integrity_error(exc) from exc
            except DBAPIError as exc:
                raise TransportError(str(exc.orig)) from exc
        return []

    async def delete(self, session: TenantSession, table: str, filters: Filters) -> list[Row]:
        tbl = self._table(table)
        predicate = and_(self._mutation_guard(session, tbl), *self._where(tbl, filters))
        async with self._sessions() as db:
            try:
                result = await db.execute(select(tbl).where(predicate))
                removed = [self._row(m) for m in result.mappings().all()]
                if removed:
                    await db.execute(delete(tbl).where(predicate))
                    await db.commit()
            except DBAPIError as exc:
                raise TransportError(str(exc.orig)) from exc
        return removed
