"""Global pytest fixtures & helpers.

Adds project root to path and provides reusable coordinate factories so
tests can build tracks without repeating boilerplate.
"""
from __future__ import annotations

import math
import os
import sys
from datetime import datetime, timedelta, timezone
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fleet_telemetry.models import Coordinate, GeoPoint, Geofence, GeofenceKind


T0 = datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)
BASE_LAT = 4.60
BASE_LON = -74.08
# Degrees of latitude per kilometre on the 6371 km sphere.
KM_LAT_DEG = math.degrees(1 / 6371.0)


# --- Factory helpers -------------------------------------------------
def make_coord(lat=BASE_LAT, lon=BASE_LON, t=T0, vehicle="veh-1", **extra):
    if isinstance(t, (int, float)):
        t = T0 + timedelta(seconds=t)
    return Coordinate(vehicle_id=vehicle, latitude=lat, longitude=lon, timestamp=t, **extra)


def make_track(steps, vehicle="veh-1", start=T0):
    """Build a track from ``(seconds_since_previous, km_north)`` steps."""

    coords = [make_coord(t=start, vehicle=vehicle)]
    for seconds, km_north in steps:
        prev = coords[-1]
        coords.append(
            make_coord(
                lat=prev.latitude + km_north * KM_LAT_DEG,
                lon=prev.longitude,
                t=prev.timestamp + timedelta(seconds=seconds),
                vehicle=vehicle,
            )
        )
    return coords


def make_raw(**overrides):
    raw = {
        "vehicleId": "veh-1",
        "latitude": BASE_LAT,
        "longitude": BASE_LON,
        "timestamp": "2025-01-06T08:00:00Z",
    }
    raw.update(overrides)
    return raw


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def now():
    return T0 + timedelta(hours=1)


@pytest.fixture
def depot_circle():
    return Geofence(
        id="depot",
        name="Depot",
        kind=GeofenceKind.CIRCLE,
        center=GeoPoint(BASE_LAT, BASE_LON),
        radius_meters=100.0,
        assigned_vehicle_ids=frozenset({"veh-1"}),
    )


@pytest.fixture
def square_polygon():
    # Roughly 1.1 km square north-east of the base point.
    return Geofence(
        id="yard",
        name="Yard",
        kind=GeofenceKind.POLYGON,
        polygon_points=(
            GeoPoint(BASE_LAT, BASE_LON),
            GeoPoint(BASE_LAT + 0.01, BASE_LON),
            GeoPoint(BASE_LAT + 0.01, BASE_LON + 0.01),
            GeoPoint(BASE_LAT, BASE_LON + 0.01),
        ),
        assigned_vehicle_ids=frozenset({"veh-1"}),
    )
