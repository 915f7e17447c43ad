"""
radius_utils.py — Great-circle geometry for proximity queries.

Provides:
    - Haversine distance calculation between two (lat, lon) points
    - An exact lat/lon bounding box around a circle, used as the indexed
      pre-filter before the precise Haversine check
    - Metre/kilometre helpers for the API boundary and log output

All distances are in **kilometers** unless a name says otherwise.
Coordinates are in **decimal degrees**. Stored GeoJSON points are
``[longitude, latitude]``; ``Coordinate`` is always (latitude, longitude).

Mathematical Foundation — Haversine Formula
============================================
Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

Where φ = latitude, λ = longitude (radians), R ≈ 6,371 km.

Bounding box
============
For a circle of angular radius r = d / R centred at (φ, λ):

    latitude  span:  φ ± r
    longitude span:  λ ± asin(sin r / cos φ)     (when sin r < cos φ)

If sin r ≥ cos φ the circle contains a pole and every longitude qualifies.
If the longitude span leaves [-180, 180] the circle crosses the
antimeridian; the box then carries no longitude bound at all and the
Haversine check does the work.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_KM: float = 6_371.0088  # IAU mean radius
METERS_PER_KM: float = 1000.0

# Widens the indexed box so float error never rejects a boundary point
_BOX_EPSILON_DEG: float = 1e-9


# ---------------------------------------------------------------------------
# Core data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coordinate:
    """A geographic point in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        for name, value in (("Latitude", self.latitude), ("Longitude", self.longitude)):
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ValueError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise ValueError(f"{name} must be finite, got {value}")
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(
                f"Latitude must be in [-90, 90], got {self.latitude}"
            )
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(
                f"Longitude must be in [-180, 180], got {self.longitude}"
            )

    @classmethod
    def from_lon_lat(cls, coordinates: Sequence[float]) -> "Coordinate":
        """Build from a GeoJSON ``[lon, lat]`` pair."""
        if len(coordinates) != 2:
            raise ValueError(
                f"Coordinates must be a [longitude, latitude] pair, got {list(coordinates)}"
            )
        lon, lat = coordinates
        return cls(latitude=lat, longitude=lon)

    def to_lon_lat(self) -> list:
        return [self.longitude, self.latitude]

    @property
    def lat_rad(self) -> float:
        """Latitude in radians."""
        return math.radians(self.latitude)

    @property
    def lon_rad(self) -> float:
        """Longitude in radians."""
        return math.radians(self.longitude)


@dataclass(frozen=True)
class BoundingBox:
    """Indexed pre-filter; ``None`` longitude bounds mean "any longitude"."""
    min_lat: float
    max_lat: float
    min_lon: Optional[float]
    max_lon: Optional[float]

    @property
    def spans_all_longitudes(self) -> bool:
        return self.min_lon is None

    def contains(self, point: Coordinate) -> bool:
        if not (self.min_lat <= point.latitude <= self.max_lat):
            return False
        if self.spans_all_longitudes:
            return True
        return self.min_lon <= point.longitude <= self.max_lon


# ---------------------------------------------------------------------------
# Haversine implementation
# ---------------------------------------------------------------------------

def great_circle_km(point1: Coordinate, point2: Coordinate) -> float:
    """Unrounded Haversine distance in kilometers (used for radius membership)."""
    d_lat = point2.lat_rad - point1.lat_rad
    d_lon = point2.lon_rad - point1.lon_rad

    a = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(point1.lat_rad)
        * math.cos(point2.lat_rad)
        * math.sin(d_lon / 2.0) ** 2
    )
    a = min(1.0, max(0.0, a))

    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_KM * c


# ---------------------------------------------------------------------------
# Bounding box (indexed pre-filter before the exact check)
# ---------------------------------------------------------------------------

def bounding_box(center: Coordinate, radius_km: float) -> BoundingBox:
    """
    Smallest lat/lon box that fully contains the circle (center, radius_km).

    Examples
    --------
    >>> box = bounding_box(Coordinate(0.0, 179.99), 10.0)
    >>> box.spans_all_longitudes
    True
    """
    if radius_km < 0:
        raise ValueError(f"Radius must be non-negative, got {radius_km}")

    angular = radius_km / EARTH_RADIUS_KM
    if angular >= math.pi:
        return BoundingBox(-90.0, 90.0, None, None)

    delta_lat = math.degrees(angular) + _BOX_EPSILON_DEG
    min_lat = center.latitude - delta_lat
    max_lat = center.latitude + delta_lat

    if min_lat <= -90.0 or max_lat >= 90.0:
        # Circle reaches a pole
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), None, None)

    sin_r = math.sin(angular)
    cos_lat = math.cos(center.lat_rad)
    if sin_r >= cos_lat:
        return BoundingBox(min_lat, max_lat, None, None)

    delta_lon = math.degrees(math.asin(sin_r / cos_lat)) + _BOX_EPSILON_DEG
    min_lon = center.longitude - delta_lon
    max_lon = center.longitude + delta_lon

    if min_lon < -180.0 or max_lon > 180.0:
        # Crosses the antimeridian
        return BoundingBox(min_lat, max_lat, None, None)

    return BoundingBox(min_lat, max_lat, min_lon, max_lon)


# ---------------------------------------------------------------------------
# Unit conversion
# ---------------------------------------------------------------------------

def km_to_meters(km: float) -> float:
    return km * METERS_PER_KM


# ---------------------------------------------------------------------------
# Utility: Human-readable distance
# ---------------------------------------------------------------------------

def format_distance(km: float) -> str:
    """
    Format a distance for display.

    >>> format_distance(0.45)
    '450 m'
    >>> format_distance(3.7266)
    '3.73 km'
    """
    if km < 1.0:
        return f"{int(round(km * 1000))} m"
    return f"{km:.2f} km"
