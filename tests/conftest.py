"""Test fixtures for the CRM core.

Provides:
- A SQLite SqlBackend (one temporary database file per test) seeded with two
  organizations, T1 and T2, one agent profile each, and a user without an
  organization
- Tenant sessions for both agents
- The accessor, query cache, notification center and repositories wired on
  that backend
- Row factories inserting deals and contacts directly through the backend
"""

from __future__ import annotations

import itertools
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio

from src.crm.core.notifications import NotificationCenter
from src.crm.core.tenant import TenantSession
from src.crm.data.accessor import TenantScopedAccessor
from src.crm.data.backend import Row
from src.crm.data.cache import QueryCache
from src.crm.data.sql import SqlBackend
from src.crm.entities.activities import ActivityRepository
from src.crm.entities.contacts import ContactRepository
from src.crm.entities.deals import DealRepository
from src.crm.entities.properties import PropertyRepository
from src.crm.entities.templates import EmailTemplateRepository

T1 = "org-alpha"
T2 = "org-beta"
USER_T1 = "user-alpha"
USER_T2 = "user-beta"
USER_ORPHAN = "user-orphan"

_ids = itertools.count(1)


# -- Backend -----------------------------------------------------------------


async def _seed(backend: SqlBackend) -> None:
    for org_id, user_id, name in (
        (T1, USER_T1, "Agence Alpha"),
        (T2, USER_T2, "Agence Beta"),
    ):
        session = TenantSession(user_id=user_id, access_token="seed", tenant_id=org_id)
        await backend.insert(session, "organizations", [{"id": org_id, "name": name}])
        await backend.insert(
            session,
            "profiles",
            [
                {
                    "id": user_id,
                    "organization_id": org_id,
                    "full_name": f"Agent {name}",
                    "email": f"{user_id}@example.com",
                }
            ],
        )
    orphan = TenantSession(user_id=USER_ORPHAN, access_token="seed")
    await backend.insert(
        orphan, "profiles", [{"id": USER_ORPHAN, "full_name": "Sans Agence"}]
    )


@pytest_asyncio.fixture
async def backend(tmp_path) -> AsyncGenerator[SqlBackend, None]:
    """SQLite backend with both tenants seeded."""
    sql = SqlBackend.from_url(f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}")
    await sql.create_all()
    await _seed(sql)
    yield sql
    await sql.close()


# -- Sessions ----------------------------------------------------------------


@pytest.fixture
def session_t1() -> TenantSession:
    return TenantSession(user_id=USER_T1, access_token="token-alpha", tenant_id=T1)


@pytest.fixture
def session_t2() -> TenantSession:
    return TenantSession(user_id=USER_T2, access_token="token-beta", tenant_id=T2)


# -- Services ----------------------------------------------------------------


@pytest.fixture
def notifier() -> NotificationCenter:
    return NotificationCenter(max_history=100)


@pytest.fixture
def cache() -> QueryCache:
    return QueryCache()


@pytest.fixture
def accessor(backend: SqlBackend, notifier: NotificationCenter) -> TenantScopedAccessor:
    return TenantScopedAccessor(backend, notifier)


@pytest.fixture
def deals(accessor, cache, notifier) -> DealRepository:
    return DealRepository(accessor, cache, notifier)


@pytest.fixture
def contacts(accessor, cache, notifier) -> ContactRepository:
    return ContactRepository(accessor, cache, notifier)


@pytest.fixture
def properties(accessor, cache, notifier) -> PropertyRepository:
    return PropertyRepository(accessor, cache, notifier)


@pytest.fixture
def activities(accessor, cache, notifier) -> ActivityRepository:
    return ActivityRepository(accessor, cache, notifier)


@pytest.fixture
def templates(accessor, cache, notifier) -> EmailTemplateRepository:
    return EmailTemplateRepository(accessor, cache, notifier)


# -- Row factories -----------------------------------------------------------


RowFactory = Callable[..., Awaitable[Row]]


def _row_factory(backend: SqlBackend, table: str, defaults: dict[str, Any]) -> RowFactory:
    async def make(session: TenantSession, **overrides: Any) -> Row:
        values = {
            "id": f"{table}-{next(_ids):06d}",
            **defaults,
            "organization_id": session.tenant_id,
            **overrides,
        }
        rows = await backend.insert(session, table, [values])
        return rows[0]

    return make


@pytest.fixture
def make_deal(backend: SqlBackend) -> RowFactory:
    """Insert a deal for the session's tenant, bypassing the repository."""
    return _row_factory(
        backend,
        "deals",
        {
            "name": "Vente appartement T3",
            "stage": "nouveau",
            "amount": 250000.0,
            "probability": 20,
            "commission_rate": 5.0,
            "commission_amount": 12500.0,
        },
    )


@pytest.fixture
def make_contact(backend: SqlBackend) -> RowFactory:
    """Insert a contact for the session's tenant, bypassing the repository."""
    return _row_factory(
        backend,
        "contacts",
        {"full_name": "Marie Dupont", "pipeline_stage": "nouveau", "role": "acheteur"},
    )
