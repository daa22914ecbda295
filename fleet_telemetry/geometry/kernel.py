"""Great-circle helpers shared by every component.

Distances, speeds and bearings all go through :func:`_haversine_km` so the
segmenter, detector, scorer and geofence evaluator agree to the last bit.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Protocol, Sequence, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ..config import COORDINATE_EQUALITY_TOLERANCE_DEG, EARTH_RADIUS_KM

MetricArray = NDArray[np.float64]


class Positioned(Protocol):
    latitude: float
    longitude: float


class Timed(Positioned, Protocol):
    timestamp: object


@dataclass(frozen=True, slots=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float

    def contains(self, point: Positioned) -> bool:
        return (
            self.south <= point.latitude <= self.north
            and self.west <= point.longitude <= self.east
        )

    def area_km2(self) -> float:
        """Rough area using 111 km per degree and a mid-latitude correction."""

        lat_span = self.north - self.south
        lon_span = self.east - self.west
        mid_lat = math.radians((self.north + self.south) / 2.0)
        return abs((lat_span * 111.0) * (lon_span * 111.0 * math.cos(mid_lat)))


def _haversine_km(
    lat1: ArrayLike, lon1: ArrayLike, lat2: ArrayLike, lon2: ArrayLike
) -> Union[float, MetricArray]:
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(np.subtract(lat2, lat1))
    dlon = np.radians(np.subtract(lon2, lon1))
    a = (
        np.sin(dlat / 2.0) ** 2
        + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2.0) ** 2
    )
    # Rounding can push ``a`` a hair past 1 for antipodal points.
    a = np.clip(a, 0.0, 1.0)
    c = 2.0 * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))
    return EARTH_RADIUS_KM * c


def distance_km(a: Positioned, b: Positioned) -> float:
    """Haversine distance in kilometres between two positions."""

    return float(_haversine_km(a.latitude, a.longitude, b.latitude, b.longitude))


def distances_km(points: Sequence[Positioned]) -> MetricArray:
    """Distances between consecutive positions (length ``len(points) - 1``)."""

    if len(points) < 2:
        return np.zeros(0, dtype=float)
    lats = np.asarray([p.latitude for p in points], dtype=float)
    lons = np.asarray([p.longitude for p in points], dtype=float)
    return np.asarray(
        _haversine_km(lats[:-1], lons[:-1], lats[1:], lons[1:]), dtype=float
    )


def elapsed_hours(a: Timed, b: Timed) -> float:
    return (b.timestamp - a.timestamp).total_seconds() / 3600.0  # type: ignore[operator]


def speed_kmh(a: Timed, b: Timed) -> float:
    """Average speed between two fixes; 0 when time does not advance."""

    hours = elapsed_hours(a, b)
    if hours <= 0:
        return 0.0
    return distance_km(a, b) / hours


def bearing_degrees(a: Positioned, b: Positioned) -> float:
    """Initial compass bearing from ``a`` to ``b`` in ``[0, 360)``."""

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlon = math.radians(b.longitude - a.longitude)
    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(
        dlon
    )
    bearing = math.degrees(math.atan2(y, x)) % 360.0
    # Tiny negative angles round up to exactly 360.0 under modulo.
    return 0.0 if bearing >= 360.0 else bearing


def point_in_circle(point: Positioned, center: Positioned, radius_meters: float) -> bool:
    return distance_km(point, center) * 1000.0 <= radius_meters


def bounding_box(center: Positioned, radius_km: float) -> BoundingBox:
    """Box enclosing a circle, for cheap pre-filtering before exact checks.

    Edges are clamped to valid coordinates. A circle reaching a pole spans
    every longitude; one crossing the antimeridian is cut at +/-180.
    """

    lat_delta = math.degrees(radius_km / EARTH_RADIUS_KM)
    north = min(90.0, center.latitude + lat_delta)
    south = max(-90.0, center.latitude - lat_delta)
    cos_lat = math.cos(math.radians(center.latitude))
    if north >= 90.0 or south <= -90.0 or cos_lat <= 1e-12:
        return BoundingBox(north=north, south=south, east=180.0, west=-180.0)
    lon_delta = lat_delta / cos_lat
    return BoundingBox(
        north=north,
        south=south,
        east=min(180.0, center.longitude + lon_delta),
        west=max(-180.0, center.longitude - lon_delta),
    )


def coordinates_equal(
    a: Positioned,
    b: Positioned,
    tolerance: float = COORDINATE_EQUALITY_TOLERANCE_DEG,
) -> bool:
    return (
        abs(a.latitude - b.latitude) < tolerance
        and abs(a.longitude - b.longitude) < tolerance
    )


def center_point(points: Sequence[Positioned]) -> tuple[float, float]:
    """Arithmetic mean ``(latitude, longitude)`` of the given positions."""

    if not points:
        raise ValueError("Cannot calculate center of empty coordinates array")
    lats = np.fromiter((p.latitude for p in points), dtype=float, count=len(points))
    lons = np.fromiter((p.longitude for p in points), dtype=float, count=len(points))
    return float(lats.mean()), float(lons.mean())


__all__ = [
    "BoundingBox",
    "Positioned",
    "bearing_degrees",
    "bounding_box",
    "center_point",
    "coordinates_equal",
    "distance_km",
    "distances_km",
    "elapsed_hours",
    "point_in_circle",
    "speed_kmh",
]
