"""
test_radius_utils.py — Great-circle geometry used by proximity queries.

Covers:
    • Coordinate validation and GeoJSON [lon, lat] conversion
    • Haversine distances against known city pairs
    • Bounding box: containment of the circle, poles, antimeridian
    • Unit conversion and distance formatting

Run with:
    pytest tests/test_radius_utils.py -v
"""

from __future__ import annotations

import math

import pytest

from backend.app.spatial.radius_utils import (
    BoundingBox,
    Coordinate,
    EARTH_RADIUS_KM,
    bounding_box,
    format_distance,
    great_circle_km,
    km_to_meters,
)

MIAMI = Coordinate(25.76, -80.19)
FORT_LAUDERDALE = Coordinate(26.1224, -80.1373)
NEW_YORK = Coordinate(40.7128, -74.0060)
LONDON = Coordinate(51.5074, -0.1278)


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Coordinate
# ═══════════════════════════════════════════════════════════════════════════

class TestCoordinate:

    def test_valid(self):
        c = Coordinate(25.76, -80.19)
        assert c.latitude == 25.76
        assert c.longitude == -80.19

    @pytest.mark.parametrize("lat,lon", [(90.1, 0.0), (-90.1, 0.0), (0.0, 180.1), (0.0, -180.1)])
    def test_out_of_range(self, lat, lon):
        with pytest.raises(ValueError):
            Coordinate(lat, lon)

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite(self, value):
        with pytest.raises(ValueError):
            Coordinate(value, 0.0)

    def test_bool_rejected(self):
        with pytest.raises(ValueError):
            Coordinate(True, 0.0)

    def test_boundaries_accepted(self):
        Coordinate(90.0, 180.0)
        Coordinate(-90.0, -180.0)

    def test_from_lon_lat_swaps_order(self):
        c = Coordinate.from_lon_lat([-80.19, 25.76])
        assert c == MIAMI
        assert c.to_lon_lat() == [-80.19, 25.76]

    def test_from_lon_lat_requires_pair(self):
        with pytest.raises(ValueError):
            Coordinate.from_lon_lat([1.0, 2.0, 3.0])


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Great-circle distance
# ═══════════════════════════════════════════════════════════════════════════

class TestGreatCircle:

    def test_same_point_is_zero(self):
        assert great_circle_km(MIAMI, MIAMI) == 0.0

    def test_symmetric(self):
        assert great_circle_km(MIAMI, NEW_YORK) == great_circle_km(NEW_YORK, MIAMI)

    def test_miami_fort_lauderdale(self):
        # ~40.5 km up the coast
        assert 39.0 < great_circle_km(MIAMI, FORT_LAUDERDALE) < 42.0

    def test_new_york_london(self):
        assert 5550 < great_circle_km(NEW_YORK, LONDON) < 5590

    def test_one_degree_of_latitude(self):
        d = great_circle_km(Coordinate(0.0, 0.0), Coordinate(1.0, 0.0))
        assert d == pytest.approx(EARTH_RADIUS_KM * math.pi / 180, abs=1e-3)

    def test_antipodal(self):
        d = great_circle_km(Coordinate(0.0, 0.0), Coordinate(0.0, 180.0))
        assert d == pytest.approx(EARTH_RADIUS_KM * math.pi, abs=1e-3)

    def test_across_antimeridian_is_short(self):
        d = great_circle_km(Coordinate(0.0, 179.95), Coordinate(0.0, -179.95))
        assert d < 12.0


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Bounding box
# ═══════════════════════════════════════════════════════════════════════════

class TestBoundingBox:

    def test_contains_center(self):
        box = bounding_box(MIAMI, 10.0)
        assert box.contains(MIAMI)

    def test_contains_every_point_on_the_circle(self):
        radius_km = 50.0
        box = bounding_box(MIAMI, radius_km)
        angular = radius_km / EARTH_RADIUS_KM
        lat1, lon1 = MIAMI.lat_rad, MIAMI.lon_rad
        for step in range(360):
            bearing = math.radians(step)
            lat2 = math.asin(
                math.sin(lat1) * math.cos(angular)
                + math.cos(lat1) * math.sin(angular) * math.cos(bearing)
            )
            lon2 = lon1 + math.atan2(
                math.sin(bearing) * math.sin(angular) * math.cos(lat1),
                math.cos(angular) - math.sin(lat1) * math.sin(lat2),
            )
            point = Coordinate(math.degrees(lat2), math.degrees(lon2))
            assert box.contains(point), f"bearing {step}° escaped the box"

    def test_longitude_span_widens_with_latitude(self):
        equator = bounding_box(Coordinate(0.0, 0.0), 100.0)
        north = bounding_box(Coordinate(60.0, 0.0), 100.0)
        assert (north.max_lon - north.min_lon) > (equator.max_lon - equator.min_lon)

    def test_zero_radius_is_a_point_box(self):
        box = bounding_box(MIAMI, 0.0)
        assert box.contains(MIAMI)
        assert box.max_lat - box.min_lat < 1e-6

    def test_antimeridian_drops_longitude_bound(self):
        box = bounding_box(Coordinate(0.0, 179.99), 10.0)
        assert box.spans_all_longitudes
        assert box.contains(Coordinate(0.0, -179.99))

    def test_pole_drops_longitude_bound(self):
        box = bounding_box(Coordinate(89.99, 0.0), 10.0)
        assert box.spans_all_longitudes
        assert box.max_lat == 90.0

    def test_huge_radius_covers_globe(self):
        box = bounding_box(MIAMI, EARTH_RADIUS_KM * math.pi + 1)
        assert box == BoundingBox(-90.0, 90.0, None, None)

    def test_negative_radius_rejected(self):
        with pytest.raises(ValueError):
            bounding_box(MIAMI, -1.0)


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Units & formatting
# ═══════════════════════════════════════════════════════════════════════════

class TestUnits:

    def test_km_to_meters(self):
        assert km_to_meters(5) == 5000


class TestFormatDistance:

    def test_meters(self):
        assert format_distance(0.45) == "450 m"

    def test_kilometers(self):
        assert format_distance(3.7266) == "3.73 km"

    def test_rounds_to_whole_meters(self):
        assert format_distance(0.0004) == "0 m"
        assert format_distance(0.9994) == "999 m"
