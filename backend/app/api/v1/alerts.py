"""
FastAPI route: Alert CRUD and proximity search.

Provides endpoints to:
    GET    /api/alerts                 — list (filters: status, type)
    GET    /api/alerts/nearby          — alerts within ``distance`` km of lng/lat
    GET    /api/alerts/{id}            — one alert
    POST   /api/alerts                 — create (bearer)
    PUT    /api/alerts/{id}            — update (bearer, owner or admin)
    PATCH  /api/alerts/{id}            — same as PUT
    DELETE /api/alerts/{id}            — remove (bearer, admin)

Every successful write is pushed to connected sockets by the lifecycle
manager; these handlers only translate HTTP to manager calls.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from backend.app.alerts.lifecycle import AlertLifecycleManager
from backend.app.api.deps import get_alert_manager, get_current_actor
from backend.app.core.security import Actor

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


@router.get("", summary="List alerts, newest first")
async def list_alerts(
    status: Optional[str] = Query(None, examples=["Active"]),
    type: Optional[str] = Query(None, examples=["Flood"]),
    manager: AlertLifecycleManager = Depends(get_alert_manager),
) -> List[Dict[str, Any]]:
    return await manager.list({"status": status, "type": type})


# Registered before "/{alert_id}" so "nearby" is never read as an id
@router.get("/nearby", summary="Alerts near a point, nearest first")
async def nearby_alerts(
    lng: Optional[str] = Query(None, description="Longitude", examples=["-80.19"]),
    lat: Optional[str] = Query(None, description="Latitude", examples=["25.76"]),
    distance: Optional[str] = Query(None, description="Radius in km (default 10)"),
    manager: AlertLifecycleManager = Depends(get_alert_manager),
) -> List[Dict[str, Any]]:
    return await manager.nearby(lng, lat, distance)


@router.get("/{alert_id}", summary="Get one alert")
async def get_alert(
    alert_id: str,
    manager: AlertLifecycleManager = Depends(get_alert_manager),
) -> Dict[str, Any]:
    return await manager.get(alert_id)


@router.post("", status_code=201, summary="Create an alert")
async def create_alert(
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
    manager: AlertLifecycleManager = Depends(get_alert_manager),
) -> Dict[str, Any]:
    return await manager.create(payload, actor)


@router.api_route("/{alert_id}", methods=["PUT", "PATCH"], summary="Update an alert")
async def update_alert(
    alert_id: str,
    patch: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
    manager: AlertLifecycleManager = Depends(get_alert_manager),
) -> Dict[str, Any]:
    return await manager.update(alert_id, patch, actor)


@router.delete("/{alert_id}", summary="Remove an alert (admin)")
async def delete_alert(
    alert_id: str,
    actor: Actor = Depends(get_current_actor),
    manager: AlertLifecycleManager = Depends(get_alert_manager),
) -> Dict[str, str]:
    await manager.delete(alert_id, actor)
    return {"message": "Alert removed"}
