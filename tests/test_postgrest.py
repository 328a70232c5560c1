"""Tests for the hosted REST backend using httpx.MockTransport.

No network is used: every request is answered by a handler that records it.

Covers:
- Select encodes columns, equality filters, ordering and limit as query params
- Every request carries the api key and the session's bearer token
- Writes ask for the affected rows back
- Error responses are classified (403 -> PermissionDenied, 406 -> NotFound, 5xx -> Transport)
- Connection failures, other httpx errors and non-JSON success bodies raise TransportError
"""

from __future__ import annotations

import json

import httpx
import pytest

from src.crm.core.errors import NotFoundError, PermissionDeniedError, TransportError
from src.crm.core.tenant import TenantSession
from src.crm.data.backend import OrderBy
from src.crm.data.postgrest import PostgrestBackend

REST_URL = "https://project.supabase.co/rest/v1"


# -- Fixtures -----------------------------------------------------------------


def _make_backend(handler) -> tuple[PostgrestBackend, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    backend = PostgrestBackend(
        REST_URL, "anon-key", timeout=5.0, transport=httpx.MockTransport(record)
    )
    return backend, requests


def _session() -> TenantSession:
    return TenantSession(user_id="u1", access_token="jwt-token", tenant_id="org-1")


# -- Requests -----------------------------------------------------------------


class TestPostgrestRequests:
    """Request encoding."""

    async def test_select_encodes_query(self):
        backend, requests = _make_backend(
            lambda r: httpx.Response(200, json=[{"id": "d1", "stage": "offre"}])
        )

        rows = await backend.select(
            _session(),
            "deals",
            columns="*, contacts:contact_id(full_name)",
            filters={"organization_id": "org-1", "stage": "offre", "contact_id": None},
            order_by=OrderBy("created_at", ascending=False),
            limit=25,
        )

        assert rows == [{"id": "d1", "stage": "offre"}]
        [request] = requests
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/deals"
        params = request.url.params
        assert params["select"] == "*, contacts:contact_id(full_name)"
        assert params["organization_id"] == "eq.org-1"
        assert params["stage"] == "eq.offre"
        assert params["contact_id"] == "is.null"
        assert params["order"] == "created_at.desc"
        assert params["limit"] == "25"

    async def test_auth_headers(self):
        backend, requests = _make_backend(lambda r: httpx.Response(200, json=[]))

        await backend.select(_session(), "contacts")

        headers = requests[0].headers
        assert headers["apikey"] == "anon-key"
        assert headers["authorization"] == "Bearer jwt-token"

    async def test_update_sends_patch_with_filters(self):
        backend, requests = _make_backend(
            lambda r: httpx.Response(200, json=[{"id": "d1", "stage": "vendu", "probability": 100}])
        )

        rows = await backend.update(
            _session(),
            "deals",
            {"stage": "vendu", "probability": 100},
            {"id": "d1", "organization_id": "org-1"},
        )

        assert rows[0]["probability"] == 100
        request = requests[0]
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.d1"
        assert request.url.params["organization_id"] == "eq.org-1"
        assert request.headers["prefer"] == "return=representation"
        assert json.loads(request.content) == {"stage": "vendu", "probability": 100}

    async def test_insert_posts_rows(self):
        backend, requests = _make_backend(
            lambda r: httpx.Response(201, json=[{"id": "c1", "full_name": "Marie Dupont"}])
        )

        rows = await backend.insert(_session(), "contacts", [{"full_name": "Marie Dupont"}])

        assert rows == [{"id": "c1", "full_name": "Marie Dupont"}]
        assert requests[0].method == "POST"
        assert json.loads(requests[0].content) == [{"full_name": "Marie Dupont"}]

    async def test_empty_patch_result_is_empty_list(self):
        """A policy-filtered update returns no rows rather than an error."""
        backend, _ = _make_backend(lambda r: httpx.Response(200, json=[]))

        assert await backend.update(_session(), "deals", {"stage": "vendu"}, {"id": "x"}) == []

    async def test_delete_without_body(self):
        backend, requests = _make_backend(lambda r: httpx.Response(204))

        assert await backend.delete(_session(), "deals", {"id": "d1"}) == []
        assert requests[0].method == "DELETE"


# -- Errors -------------------------------------------------------------------


class TestPostgrestErrors:
    """Error classification."""

    async def test_rls_violation_is_permission_denied(self):
        backend, _ = _make_backend(
            lambda r: httpx.Response(
                403,
                json={"code": "42501", "message": "permission denied for table deals"},
            )
        )

        with pytest.raises(PermissionDeniedError) as exc_info:
            await backend.select(_session(), "deals")
        assert exc_info.value.code == "42501"

    async def test_single_row_mismatch_is_not_found(self):
        backend, _ = _make_backend(
            lambda r: httpx.Response(406, json={"code": "PGRST116", "message": "0 rows"})
        )

        with pytest.raises(NotFoundError):
            await backend.select(_session(), "deals")

    async def test_server_error_is_transport(self):
        backend, _ = _make_backend(lambda r: httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(TransportError):
            await backend.insert(_session(), "deals", [{"name": "x"}])

    async def test_connect_error_on_write_is_transport(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        backend, requests = _make_backend(refuse)

        with pytest.raises(TransportError):
            await backend.update(_session(), "deals", {"stage": "vendu"}, {"id": "d1"})
        assert len(requests) == 1

    async def test_non_json_success_body_is_transport(self):
        backend, _ = _make_backend(
            lambda r: httpx.Response(
                200, text="<html>proxy</html>", headers={"content-type": "text/html"}
            )
        )

        with pytest.raises(TransportError) as exc_info:
            await backend.update(_session(), "deals", {"stage": "vendu"}, {"id": "d1"})
        assert exc_info.value.message == "Réponse invalide du serveur"

    async def test_redirect_loop_is_transport(self):
        def loop(request: httpx.Request) -> httpx.Response:
            raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)

        backend, requests = _make_backend(loop)

        with pytest.raises(TransportError):
            await backend.update(_session(), "deals", {"stage": "vendu"}, {"id": "d1"})
        assert len(requests) == 1
