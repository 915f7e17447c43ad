"""
FastAPI route: Relief resources.

    GET    /api/resources              — list (filters: type, status)
    GET    /api/resources/nearby       — resources within ``distance`` km
    GET    /api/resources/{id}
    POST   /api/resources              — bearer
    PUT    /api/resources/{id}         — bearer, owner or admin
    DELETE /api/resources/{id}         — bearer, admin
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from backend.app.alerts.geo_query import GeoQueryEngine, parse_point, parse_radius_km
from backend.app.api.deps import get_current_actor, get_resource_geo, get_resource_service
from backend.app.core.security import Actor
from backend.app.records.resources import ResourceService
from backend.app.spatial.radius_utils import km_to_meters

router = APIRouter(prefix="/api/resources", tags=["resources"])


@router.get("")
async def list_resources(
    type: Optional[str] = Query(None, examples=["Water"]),
    status: Optional[str] = Query(None, examples=["Available"]),
    service: ResourceService = Depends(get_resource_service),
) -> List[Dict[str, Any]]:
    return await service.list({"type": type, "status": status})


@router.get("/nearby")
async def nearby_resources(
    lng: Optional[str] = Query(None),
    lat: Optional[str] = Query(None),
    distance: Optional[str] = Query(None, description="Radius in km (default 10)"),
    geo: GeoQueryEngine = Depends(get_resource_geo),
) -> List[Dict[str, Any]]:
    point = parse_point(lng, lat)
    radius_km = parse_radius_km(distance)
    return await geo.find_within(point, km_to_meters(radius_km))


@router.get("/{resource_id}")
async def get_resource(
    resource_id: str,
    service: ResourceService = Depends(get_resource_service),
) -> Dict[str, Any]:
    return await service.get(resource_id)


@router.post("", status_code=201)
async def create_resource(
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
    service: ResourceService = Depends(get_resource_service),
) -> Dict[str, Any]:
    return await service.create(payload, actor)


@router.api_route("/{resource_id}", methods=["PUT", "PATCH"])
async def update_resource(
    resource_id: str,
    patch: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
    service: ResourceService = Depends(get_resource_service),
) -> Dict[str, Any]:
    return await service.update(resource_id, patch, actor)


@router.delete("/{resource_id}")
async def delete_resource(
    resource_id: str,
    actor: Actor = Depends(get_current_actor),
    service: ResourceService = Depends(get_resource_service),
) -> Dict[str, str]:
    await service.delete(resource_id, actor)
    return {"message": "Resource removed"}
