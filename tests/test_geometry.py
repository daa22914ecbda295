import math

import pytest

from fleet_telemetry.geometry import (
    BoundingBox,
    bearing_degrees,
    bounding_box,
    center_point,
    coordinates_equal,
    distance_km,
    distances_km,
    point_in_circle,
    point_in_polygon,
    polygon_area_m2,
    polygon_self_intersects,
    speed_kmh,
)
from fleet_telemetry.models import GeoPoint

from conftest import KM_LAT_DEG, make_coord


PAIRS = [
    (GeoPoint(4.60, -74.08), GeoPoint(4.70, -74.08)),
    (GeoPoint(51.5074, -0.1278), GeoPoint(48.8566, 2.3522)),
    (GeoPoint(-33.8688, 151.2093), GeoPoint(35.6762, 139.6503)),
    (GeoPoint(0.0, 179.9), GeoPoint(0.0, -179.9)),
]


@pytest.mark.parametrize("a,b", PAIRS)
def test_distance_is_symmetric(a, b):
    assert distance_km(a, b) == pytest.approx(distance_km(b, a), rel=1e-12)


def test_distance_identity_and_bearing_defined():
    p = GeoPoint(4.6, -74.08)
    assert distance_km(p, p) == 0.0
    bearing = bearing_degrees(p, p)
    assert 0.0 <= bearing < 360.0


def test_known_distance_london_paris():
    london, paris = PAIRS[1]
    assert distance_km(london, paris) == pytest.approx(343.5, abs=1.0)


def test_distances_vector_matches_scalar():
    points = [GeoPoint(4.6 + i * 0.01, -74.08 + i * 0.005) for i in range(5)]
    vector = distances_km(points)
    assert len(vector) == 4
    for i, value in enumerate(vector):
        assert value == pytest.approx(distance_km(points[i], points[i + 1]), rel=1e-9)
    assert len(distances_km(points[:1])) == 0


def test_bearing_cardinal_directions():
    origin = GeoPoint(0.0, 0.0)
    assert bearing_degrees(origin, GeoPoint(1.0, 0.0)) == pytest.approx(0.0, abs=1e-9)
    assert bearing_degrees(origin, GeoPoint(0.0, 1.0)) == pytest.approx(90.0)
    assert bearing_degrees(origin, GeoPoint(-1.0, 0.0)) == pytest.approx(180.0)
    assert bearing_degrees(origin, GeoPoint(0.0, -1.0)) == pytest.approx(270.0)


def test_speed_zero_when_time_does_not_advance():
    a = make_coord(t=0)
    b = make_coord(lat=4.7, t=0)
    assert speed_kmh(a, b) == 0.0
    c = make_coord(lat=4.6 + KM_LAT_DEG, t=60)
    assert speed_kmh(a, c) == pytest.approx(60.0, rel=1e-6)


def test_point_in_circle_boundary():
    center = GeoPoint(4.6, -74.08)
    assert point_in_circle(center, center, 100.0)
    beyond = GeoPoint(4.6 + 0.100001 * KM_LAT_DEG, -74.08)
    assert not point_in_circle(beyond, center, 100.0)
    inside = GeoPoint(4.6 + 0.0999 * KM_LAT_DEG, -74.08)
    assert point_in_circle(inside, center, 100.0)


def test_bounding_box_contains_circle_extent():
    center = GeoPoint(60.0, 10.0)
    box = bounding_box(center, 10.0)
    lat_delta = math.degrees(10.0 / 6371.0)
    assert box.north == pytest.approx(60.0 + lat_delta)
    assert box.south == pytest.approx(60.0 - lat_delta)
    # Longitude span widens by 1/cos(lat) = 2 at 60 degrees.
    assert box.east - 10.0 == pytest.approx(2 * lat_delta)
    assert box.contains(center)
    assert not box.contains(GeoPoint(61.0, 10.0))



def test_bounding_box_is_clamped_near_poles_and_antimeridian():
    polar = bounding_box(GeoPoint(89.99, 0.0), 10.0)
    assert polar.north == 90.0
    assert polar.south == pytest.approx(89.99 - math.degrees(10.0 / 6371.0))
    assert (polar.west, polar.east) == (-180.0, 180.0)

    edge = bounding_box(GeoPoint(0.0, 179.95), 10.0)
    assert edge.east == 180.0
    assert edge.west == pytest.approx(179.95 - math.degrees(10.0 / 6371.0))

def test_bounding_box_area_rough():
    box = BoundingBox(north=1.0, south=0.0, east=1.0, west=0.0)
    assert box.area_km2() == pytest.approx(111.0 * 111.0, rel=1e-3)


def test_coordinates_equal_tolerance():
    a = GeoPoint(4.6, -74.08)
    assert coordinates_equal(a, GeoPoint(4.6 + 5e-7, -74.08))
    assert not coordinates_equal(a, GeoPoint(4.6 + 2e-6, -74.08))


def test_center_point_mean_and_empty():
    lat, lon = center_point([GeoPoint(0.0, 0.0), GeoPoint(2.0, 4.0)])
    assert (lat, lon) == (1.0, 2.0)
    with pytest.raises(ValueError):
        center_point([])


def test_point_in_polygon_inside_outside_and_boundary():
    square = [GeoPoint(0, 0), GeoPoint(0, 1), GeoPoint(1, 1), GeoPoint(1, 0)]
    assert point_in_polygon(GeoPoint(0.5, 0.5), square)
    assert not point_in_polygon(GeoPoint(1.5, 0.5), square)
    assert point_in_polygon(GeoPoint(0.0, 0.5), square)
    assert not point_in_polygon(GeoPoint(0.5, 0.5), square[:2])


def test_polygon_area_and_self_intersection_heuristic():
    side = 0.001  # ~111 m
    square = [
        GeoPoint(10.0, 10.0),
        GeoPoint(10.0 + side, 10.0),
        GeoPoint(10.0 + side, 10.0 + side),
        GeoPoint(10.0, 10.0 + side),
    ]
    area = polygon_area_m2(square)
    assert 11_000 < area < 13_000
    assert not polygon_self_intersects(square)
    closed = square + [GeoPoint(10.0, 10.0)]
    assert polygon_self_intersects(closed)
