"""
lifecycle.py — Alert Lifecycle Manager.

The only writer of alert records. Every successful mutation is announced
on the fan-out bus **after** the store has committed it:

    create ──▶ store.insert        ──▶ bus: alertUpdate  (created)
    update ──▶ store.update_where  ──▶ bus: alertUpdate  (updated)
    delete ──▶ store.delete_where  ──▶ bus: alertDeleted (deleted)

A rejected mutation (400 / 401 / 403 / 404 / 409) writes nothing and
publishes nothing.

Authorisation:
    create   any authenticated actor
    update   the creator, or an admin
    delete   admin only (non-admins are refused before any lookup)

Proximity queries accept kilometers at this boundary and hand meters to
the ``GeoQueryEngine``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from backend.app.alerts.geo_query import GeoQueryEngine, parse_point, parse_radius_km
from backend.app.alerts.models import AlertCreate, AlertStatus, AlertType
from backend.app.alerts.store import AlertStore
from backend.app.core.security import Role
from backend.app.realtime.bus import FanOutBus
from backend.app.realtime.events import AlertEvent
from backend.app.records.service import AccessPolicy, EntityService
from backend.app.spatial.radius_utils import format_distance, km_to_meters

logger = logging.getLogger(__name__)


class AlertLifecycleManager(EntityService):
    """Authorised alert CRUD plus proximity search and change publication."""

    resource = "Alert"
    create_schema = AlertCreate
    policy = AccessPolicy(
        edit_roles=frozenset({Role.ADMIN}),
        owner_may_edit=True,
        delete_roles=frozenset({Role.ADMIN}),
        owner_may_delete=False,
    )
    list_filters = {"status": AlertStatus, "type": AlertType}

    def __init__(self, store: AlertStore, bus: Optional[FanOutBus] = None) -> None:
        super().__init__(store)
        self.bus = bus
        self.geo = GeoQueryEngine(store)

    # ── publication ──

    def _publish(self, event: AlertEvent) -> None:
        if self.bus is None:
            return
        self.bus.publish(event)

    async def _after_create(self, record: Dict[str, Any]) -> None:
        self._publish(AlertEvent.created(record))

    async def _after_update(self, record: Dict[str, Any]) -> None:
        self._publish(AlertEvent.updated(record))

    async def _after_delete(self, record: Dict[str, Any]) -> None:
        self._publish(AlertEvent.deleted(record))

    # ── proximity ──

    async def nearby(
        self,
        longitude: Any,
        latitude: Any,
        distance_km: Any = None,
    ) -> List[Dict[str, Any]]:
        """
        Alerts within ``distance_km`` (default 10 km) of (longitude, latitude),
        nearest first.

        Raises
        ------
        ValidationError
            Missing or out-of-range coordinates, or a negative distance.
        """
        point = parse_point(longitude, latitude)
        radius_km = parse_radius_km(distance_km)
        pairs = await self.geo.find_within_with_distance(point, km_to_meters(radius_km))

        nearest = format_distance(pairs[0][1]) if pairs else "-"
        logger.info(
            "Nearby query (%.5f, %.5f) r=%s → %d alert(s), nearest %s",
            point.latitude, point.longitude, format_distance(radius_km), len(pairs), nearest,
        )
        return [alert for alert, _ in pairs]
