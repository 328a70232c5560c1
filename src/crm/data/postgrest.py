"""Hosted REST backend -- TableBackend over the platform's PostgREST dialect.

Key implementation details:
- Equality filters are sent as ``column=eq.value`` query parameters
- Writes ask for ``Prefer: return=representation`` so affected rows come back
- Every request carries the anon api key and the session's bearer token; the
  platform's row-level security decides what the caller may see or change
- Reads are retried with tenacity on connect errors and timeouts only
- Error responses are classified into the CRM error taxonomy; any other httpx
  failure, or a success body that is not JSON, surfaces as TransportError
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.crm.core.errors import TransportError, classify_backend_error
from src.crm.core.tenant import TenantSession
from src.crm.data.backend import Filters, OrderBy, Row, TableBackend

logger = structlog.get_logger(__name__)


def _read_retry(attempts: int):
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
        reraise=True,
    )


def _encode_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if hasattr(value, "value"):  # str enums
        return str(value.value)
    return str(value)


def _filter_params(filters: Filters | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for column, value in (filters or {}).items():
        if value is None:
            params[column] = "is.null"
        else:
            params[column] = f"eq.{_encode_value(value)}"
    return params


class PostgrestBackend(TableBackend):
    """TableBackend speaking the hosted platform's REST dialect.

    Args:
        rest_url: Base REST URL, e.g. ``https://<project>.supabase.co/rest/v1``.
        api_key: Public (anon) api key of the project.
        timeout: Per-request timeout in seconds.
        max_retries: Attempts for reads on connect errors and timeouts.
        transport: Optional httpx transport (tests inject ``httpx.MockTransport``).
    """

    def __init__(
        self,
        rest_url: str,
        api_key: str,
        timeout: float = 10.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._rest_url = rest_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._get = _read_retry(max_retries)(self._get_once)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._rest_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    def _headers(self, session: TenantSession) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {session.access_token}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    async def _send(
        self,
        method: str,
        session: TenantSession,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> list[Row]:
        try:
            response = await self._request(method, session, table, params=params, json=json)
        except httpx.HTTPError as exc:
            logger.warning(
                "postgrest.transport_failed",
                method=method,
                table=table,
                error=str(exc),
            )
            raise TransportError(str(exc) or None) from exc

        if response.is_error:
            try:
                payload: Any = response.json()
            except ValueError:
                payload = response.text
            error = classify_backend_error(response.status_code, payload)
            logger.warning(
                "postgrest.request_failed",
                method=method,
                table=table,
                status_code=response.status_code,
                error_type=type(error).__name__,
                code=error.code,
            )
            raise error

        if not response.content:
            return []
        try:
            data = response.json()
        except ValueError as exc:
            logger.warning(
                "postgrest.invalid_body",
                method=method,
                table=table,
                status_code=response.status_code,
                content_type=response.headers.get("content-type"),
            )
            raise TransportError("Réponse invalide du serveur") from exc
        return data if isinstance(data, list) else [data]

    async def _request(
        self,
        method: str,
        session: TenantSession,
        table: str,
        *,
        params: dict[str, str] | None,
        json: Any,
    ) -> httpx.Response:
        if method == "GET":
            return await self._get(session, table, params or {})
        async with self._client() as client:
            return await client.request(
                method,
                f"/{table}",
                params=params,
                json=json,
                headers=self._headers(session),
            )

    async def _get_once(
        self, session: TenantSession, table: str, params: dict[str, str]
    ) -> httpx.Response:
        async with self._client() as client:
            return await client.get(f"/{table}", params=params, headers=self._headers(session))

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
        params = {"select": columns, **_filter_params(filters)}
        if order_by is not None:
            direction = "asc" if order_by.ascending else "desc"
            params["order"] = f"{order_by.column}.{direction}"
        if limit is not None:
            params["limit"] = str(limit)
        return await self._send("GET", session, table, params=params)

    async def insert(self, session: TenantSession, table: str, rows: list[Row]) -> list[Row]:
        return await self._send("POST", session, table, json=rows)

    async def update(
        self, session: TenantSession, table: str, values: Row, filters: Filters
    ) -> list[Row]:
        return await self._send(
            "PATCH", session, table, params=_filter_params(filters), json=values
        )

    async def delete(self, session: TenantSession, table: str, filters: Filters) -> list[Row]:
        return await self._send("DELETE", session, table, params=_filter_params(filters))
