"""
FastAPI route: Field reports.

    GET    /api/reports                — list (filters: type, status, alert)
    GET    /api/reports/{id}
    POST   /api/reports                — bearer
    PUT    /api/reports/{id}           — bearer; owner, responder or admin
    DELETE /api/reports/{id}           — bearer; owner or admin
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from backend.app.api.deps import get_current_actor, get_report_service
from backend.app.core.security import Actor
from backend.app.records.reports import ReportService

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("")
async def list_reports(
    type: Optional[str] = Query(None, examples=["Damage"]),
    status: Optional[str] = Query(None, examples=["Pending"]),
    alert: Optional[str] = Query(None, description="Related alert id"),
    service: ReportService = Depends(get_report_service),
) -> List[Dict[str, Any]]:
    return await service.list({"type": type, "status": status, "alert": alert})


@router.get("/{report_id}")
async def get_report(
    report_id: str,
    service: ReportService = Depends(get_report_service),
) -> Dict[str, Any]:
    return await service.get(report_id)


@router.post("", status_code=201)
async def create_report(
    payload: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service),
) -> Dict[str, Any]:
    return await service.create(payload, actor)


@router.api_route("/{report_id}", methods=["PUT", "PATCH"])
async def update_report(
    report_id: str,
    patch: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service),
) -> Dict[str, Any]:
    return await service.update(report_id, patch, actor)


@router.delete("/{report_id}")
async def delete_report(
    report_id: str,
    actor: Actor = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service),
) -> Dict[str, str]:
    await service.delete(report_id, actor)
    return {"message": "Report removed"}
