"""
test_alert_client.py — HTTP client feeding the reconciliation cache.

The server side is replaced with ``httpx.MockTransport`` so each test
controls exactly what the API answers.

Run with:
    pytest tests/test_alert_client.py -v
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx
import pytest

from backend.app.client.alert_client import AlertClient, AlertClientError
from backend.app.client.reconciliation import MergeAction

from conftest import alert_payload

BASE_URL = "http://alerts.test"


def _server_alert(server_id: str, **overrides: Any) -> Dict[str, Any]:
    alert = alert_payload()
    alert.update(
        id=server_id,
        status="Active",
        createdBy="u-1",
        createdAt=datetime.now(timezone.utc).isoformat(),
        version=1,
    )
    alert.update(overrides)
    return alert


class FakeAPI:
    """Scripted responses keyed by (method, path); records every request."""

    def __init__(self) -> None:
        self.routes: Dict[tuple, httpx.Response] = {}
        self.requests: List[httpx.Request] = []

    def on(self, method: str, path: str, status: int = 200, body: Any = None) -> None:
        self.routes[(method, path)] = httpx.Response(status, json=body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"message": "no route"})
        return response


@pytest.fixture
def api() -> FakeAPI:
    return FakeAPI()


@pytest.fixture
def make_client(api):
    def _make(**kwargs) -> AlertClient:
        http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(api))
        return AlertClient(BASE_URL, token="tok", user_id="u-1", http_client=http, **kwargs)
    return _make


class TestReads:

    @pytest.mark.asyncio
    async def test_list_replaces_cache(self, api, make_client):
        api.on("GET", "/api/alerts", body=[_server_alert("ALR-B"), _server_alert("ALR-A")])
        async with make_client() as client:
            client.cache.merge(_server_alert("ALR-STALE"))
            alerts = await client.list_alerts()

        assert [a["id"] for a in alerts] == ["ALR-B", "ALR-A"]
        assert [a["id"] for a in client.cache.alerts] == ["ALR-B", "ALR-A"]

    @pytest.mark.asyncio
    async def test_filtered_list_merges(self, api, make_client):
        api.on("GET", "/api/alerts", body=[_server_alert("ALR-B")])
        async with make_client() as client:
            client.cache.merge(_server_alert("ALR-A"))
            await client.list_alerts(status="Active")

        assert api.requests[0].url.params["status"] == "Active"
        assert [a["id"] for a in client.cache.alerts] == ["ALR-A", "ALR-B"]

    @pytest.mark.asyncio
    async def test_sends_bearer(self, api, make_client):
        api.on("GET", "/api/alerts/ALR-A", body=_server_alert("ALR-A"))
        async with make_client() as client:
            await client.get_alert("ALR-A")
        assert api.requests[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_nearby_params(self, api, make_client):
        api.on("GET", "/api/alerts/nearby", body=[])
        async with make_client() as client:
            await client.nearby(-80.19, 25.76, 5)
        params = api.requests[0].url.params
        assert (params["lng"], params["lat"], params["distance"]) == ("-80.19", "25.76", "5")


class TestWrites:

    @pytest.mark.asyncio
    async def test_create_promotes_optimistic_entry(self, api, make_client):
        api.on("POST", "/api/alerts", status=201, body=_server_alert("ALR-NEW"))
        async with make_client() as client:
            client.cache.merge(_server_alert("ALR-OLD", title="Older"))
            created = await client.create_alert(alert_payload())

        assert created["id"] == "ALR-NEW"
        assert client.cache.pending_ids == []
        assert [a["id"] for a in client.cache.alerts] == ["ALR-OLD", "ALR-NEW"]
        assert json.loads(api.requests[0].content)["title"] == "Flood Warning"

    @pytest.mark.asyncio
    async def test_create_then_socket_echo_is_single_entry(self, api, make_client):
        server = _server_alert("ALR-NEW")
        api.on("POST", "/api/alerts", status=201, body=server)
        async with make_client() as client:
            await client.create_alert(alert_payload())
            result = client.handle_message({"event": "alertUpdate", "data": server})

        assert result.action == MergeAction.REPLACED
        assert len(client.cache) == 1

    @pytest.mark.asyncio
    async def test_rejected_create_rolls_back(self, api, make_client):
        api.on("POST", "/api/alerts", status=400, body={"message": "Invalid alert: severity"})
        async with make_client() as client:
            with pytest.raises(AlertClientError) as exc_info:
                await client.create_alert(alert_payload(severity="Huge"))

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Invalid alert: severity"
        assert len(client.cache) == 0

    @pytest.mark.asyncio
    async def test_transport_failure_rolls_back(self, make_client):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(refuse))
        client = AlertClient(BASE_URL, token="tok", user_id="u-1", http_client=http)
        with pytest.raises(httpx.ConnectError):
            await client.create_alert(alert_payload())
        await client.close()
        assert len(client.cache) == 0

    @pytest.mark.asyncio
    async def test_update_and_delete(self, api, make_client):
        api.on("PUT", "/api/alerts/ALR-A", body=_server_alert("ALR-A", version=2))
        api.on("DELETE", "/api/alerts/ALR-A", body={"message": "Alert removed"})
        async with make_client() as client:
            client.cache.merge(_server_alert("ALR-A"))
            await client.update_alert("ALR-A", {"status": "Resolved"})
            assert client.cache.get("ALR-A")["version"] == 2

            body = await client.delete_alert("ALR-A")

        assert body == {"message": "Alert removed"}
        assert len(client.cache) == 0

    @pytest.mark.asyncio
    async def test_forbidden_update_leaves_cache(self, api, make_client):
        api.on("PUT", "/api/alerts/ALR-A", status=403, body={"message": "Not authorized to update this alert"})
        async with make_client() as client:
            client.cache.merge(_server_alert("ALR-A"))
            with pytest.raises(AlertClientError) as exc_info:
                await client.update_alert("ALR-A", {"status": "Resolved"})

        assert exc_info.value.status_code == 403
        assert client.cache.get("ALR-A")["status"] == "Active"

    @pytest.mark.asyncio
    async def test_padded_title_with_echo_first_is_single_entry(self):
        server = _server_alert("ALR-NEW", title="Flood Warning", createdAt="2020-01-01T00:00:00+00:00")
        client: AlertClient

        def answer(request):
            # the fan-out copy lands before the HTTP response
            client.handle_message({"event": "alertUpdate", "data": server})
            return httpx.Response(201, json=server)

        http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(answer))
        client = AlertClient(BASE_URL, token="tok", user_id="u-1", http_client=http)
        async with client:
            client.cache.merge(_server_alert("ALR-OLD", title="Older"))
            await client.create_alert(alert_payload(title="  Flood Warning  "))

        assert [a["id"] for a in client.cache.alerts] == ["ALR-OLD", "ALR-NEW"]
        assert client.cache.pending_ids == []

    @pytest.mark.asyncio
    async def test_create_without_user_id_commits(self, api):
        api.on("POST", "/api/alerts", status=201, body=_server_alert("ALR-NEW"))
        http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(api))
        async with AlertClient(BASE_URL, token="tok", http_client=http) as client:
            await client.create_alert(alert_payload())

        assert [a["id"] for a in client.cache.alerts] == ["ALR-NEW"]
        assert client.cache.pending_ids == []

    @pytest.mark.asyncio
    async def test_late_echo_after_delete_ignored(self, api, make_client):
        api.on("DELETE", "/api/alerts/ALR-A", body={"message": "Alert removed"})
        async with make_client() as client:
            client.cache.merge(_server_alert("ALR-A"))
            await client.delete_alert("ALR-A")
            result = client.handle_message({"event": "alertUpdate", "data": _server_alert("ALR-A")})

        assert result.action == MergeAction.IGNORED
        assert len(client.cache) == 0
