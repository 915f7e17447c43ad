"""
alert_client.py — Async HTTP client for the alert API.

Bundles an ``httpx.AsyncClient`` with a ``ReconciliationCache`` so that
every read, write and socket message lands in one local view:

    client = AlertClient("http://localhost:8000", token=token, user_id="u-1")
    await client.list_alerts()                 # cache.replace_all
    alert = await client.create_alert({...})   # optimistic, then merged
    client.handle_message(ws_message)          # fan-out events
    await client.close()

A failed ``create_alert`` rolls its optimistic entry back before raising;
a successful one commits exactly that entry, whatever the server normalised.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from backend.app.client.reconciliation import MergeResult, ReconciliationCache

logger = logging.getLogger(__name__)


class AlertClientError(Exception):
    """Non-2xx answer from the alert API."""

    def __init__(self, status_code: int, message: str, body: Any = None):
        super().__init__(f"[{status_code}] {message}")
        self.status_code = status_code
        self.message = message
        self.body = body


class AlertClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        user_id: Optional[str] = None,
        cache: Optional[ReconciliationCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.user_id = user_id
        self.cache = cache or ReconciliationCache()
        self.timeout = timeout
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def __aenter__(self) -> "AlertClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        client = await self._get_client()
        response = await client.request(method, path, headers=self._headers(), **kwargs)
        try:
            body = response.json()
        except ValueError:
            body = response.text

        if response.is_error:
            message = body.get("message") if isinstance(body, dict) else str(body)
            logger.warning("%s %s failed: %d %s", method, path, response.status_code, message)
            raise AlertClientError(response.status_code, message or response.reason_phrase, body)
        return body

    # ── reads ──

    async def list_alerts(
        self,
        *,
        status: Optional[str] = None,
        type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch alerts and resynchronise the cache with them."""
        params = {k: v for k, v in (("status", status), ("type", type)) if v}
        alerts = await self._request("GET", "/api/alerts", params=params)
        if params:
            self.cache.merge_many(alerts)
        else:
            self.cache.replace_all(alerts)
        return alerts

    async def get_alert(self, alert_id: str) -> Dict[str, Any]:
        alert = await self._request("GET", f"/api/alerts/{alert_id}")
        self.cache.merge(alert)
        return alert

    async def nearby(
        self,
        longitude: float,
        latitude: float,
        distance_km: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"lng": longitude, "lat": latitude}
        if distance_km is not None:
            params["distance"] = distance_km
        alerts = await self._request("GET", "/api/alerts/nearby", params=params)
        self.cache.merge_many(alerts)
        return alerts

    # ── writes ──

    async def create_alert(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Create with an optimistic local entry, committed once the server answers."""
        local_id = self.cache.add_optimistic(payload, self.user_id or "")
        try:
            alert = await self._request("POST", "/api/alerts", json=dict(payload))
        except (AlertClientError, httpx.HTTPError):
            self.cache.discard_pending(local_id)
            raise
        self.cache.commit(local_id, alert)
        return alert

    async def update_alert(self, alert_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        alert = await self._request("PUT", f"/api/alerts/{alert_id}", json=dict(patch))
        self.cache.merge(alert)
        return alert

    async def delete_alert(self, alert_id: str) -> Dict[str, Any]:
        body = await self._request("DELETE", f"/api/alerts/{alert_id}")
        self.cache.remove(alert_id)
        return body

    # ── socket ──

    def handle_message(self, message: Any) -> MergeResult:
        return self.cache.apply_message(message)
