"""
FastAPI dependencies — services from application state, and the caller.

The lifespan in ``backend.app.main`` builds every service once and stores
it on ``app.state``; routes receive them through these providers so tests
can swap in their own instances.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from backend.app.alerts.geo_query import GeoQueryEngine
from backend.app.alerts.lifecycle import AlertLifecycleManager
from backend.app.core.database import Database
from backend.app.core.errors import UnauthenticatedError
from backend.app.core.security import Actor, parse_authorization_header, verify_token
from backend.app.realtime.bus import FanOutBus
from backend.app.records.reports import ReportService
from backend.app.records.resources import ResourceService


# ── services ──

def get_alert_manager(request: Request) -> AlertLifecycleManager:
    return request.app.state.alert_manager


def get_resource_service(request: Request) -> ResourceService:
    return request.app.state.resource_service


def get_resource_geo(request: Request) -> GeoQueryEngine:
    return request.app.state.resource_geo


def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


def get_bus(request: Request) -> FanOutBus:
    return request.app.state.bus


def get_database(request: Request) -> Database:
    return request.app.state.database


# ── caller ──

def get_current_actor(
    authorization: Optional[str] = Header(default=None),
) -> Actor:
    """The caller; 401 when the bearer token is missing or invalid."""
    token = parse_authorization_header(authorization)
    if token is None:
        raise UnauthenticatedError()
    return verify_token(token)
