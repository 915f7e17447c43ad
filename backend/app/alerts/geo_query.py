"""
geo_query.py — Proximity search over an Entity Store.

Answers "records within R meters of P" in two stages, the same shape as a
document store's 2dsphere ``$near`` query:

    Step 1 — Bounding box on the (latitude, longitude) index
             (cheap range scan, may over-select near the box corners)
    Step 2 — Exact Haversine check on the candidates
             (spherical distance, never planar)

Results are ordered nearest-first; ties keep the store's order.

Input contract: radius arrives here in **meters**. The km → m conversion
happens at the lifecycle/API boundary.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from backend.app.core.config import settings
from backend.app.core.errors import ValidationError
from backend.app.records.store import EntityStore
from backend.app.spatial.radius_utils import (
    Coordinate,
    METERS_PER_KM,
    bounding_box,
    great_circle_km,
)

logger = logging.getLogger(__name__)

COORDINATES_REQUIRED = "Please provide longitude and latitude coordinates"


def parse_point(longitude: Any, latitude: Any) -> Coordinate:
    """Parse query-string coordinates into a validated ``Coordinate``."""
    if longitude in (None, "") or latitude in (None, ""):
        raise ValidationError(COORDINATES_REQUIRED, field="lng/lat")
    try:
        return Coordinate(latitude=float(latitude), longitude=float(longitude))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid coordinates: {exc}", field="lng/lat")


def parse_radius_km(distance: Any) -> float:
    """Radius in km; defaults when omitted, capped at half the equator."""
    if distance in (None, ""):
        return settings.DEFAULT_NEARBY_RADIUS_KM
    try:
        km = float(distance)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid distance '{distance}'", field="distance")
    if not math.isfinite(km) or km < 0:
        raise ValidationError(
            f"Distance must be a non-negative number of kilometers, got {distance}",
            field="distance",
        )
    return min(km, settings.MAX_NEARBY_RADIUS_KM)


def record_coordinate(record: Dict[str, Any]) -> Coordinate:
    """The (lat, lon) of a stored record's ``location.coordinates``."""
    return Coordinate.from_lon_lat(record["location"]["coordinates"])


class GeoQueryEngine:
    """Great-circle radius queries against one store."""

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    async def find_within_with_distance(
        self,
        point: Optional[Coordinate],
        radius_meters: float,
    ) -> List[Tuple[Dict[str, Any], float]]:
        """
        ``(record, distance_km)`` pairs within ``radius_meters`` of ``point``,
        nearest first.
        """
        if point is None:
            raise ValidationError(
                COORDINATES_REQUIRED,
                field="point",
            )
        if (
            isinstance(radius_meters, bool)
            or not isinstance(radius_meters, (int, float))
            or not math.isfinite(radius_meters)
            or radius_meters < 0
        ):
            raise ValidationError(
                f"Radius must be a non-negative number of meters, got {radius_meters!r}",
                field="radius",
            )

        radius_km = radius_meters / METERS_PER_KM
        box = bounding_box(point, radius_km)
        candidates = await self.store.find_in_box(box)

        matched: List[Tuple[Dict[str, Any], float]] = []
        for record in candidates:
            dist_km = great_circle_km(point, record_coordinate(record))
            if dist_km * METERS_PER_KM <= radius_meters:
                matched.append((record, dist_km))

        matched.sort(key=lambda pair: pair[1])

        logger.debug(
            "Geo query: %d candidates in box, %d within %.0f m of (%.5f, %.5f)",
            len(candidates), len(matched), radius_meters,
            point.latitude, point.longitude,
        )
        return matched

    async def find_within(
        self,
        point: Optional[Coordinate],
        radius_meters: float,
    ) -> List[Dict[str, Any]]:
        """Records within ``radius_meters`` of ``point``, nearest first."""
        pairs = await self.find_within_with_distance(point, radius_meters)
        return [record for record, _ in pairs]
