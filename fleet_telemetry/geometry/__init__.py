"""Geometry kernel: great-circle measurements and geofence shapes."""

from .kernel import (
    BoundingBox,
    Positioned,
    bearing_degrees,
    bounding_box,
    center_point,
    coordinates_equal,
    distance_km,
    distances_km,
    elapsed_hours,
    point_in_circle,
    speed_kmh,
)
from .polygon import point_in_polygon, polygon_area_m2, polygon_self_intersects

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
    "point_in_polygon",
    "polygon_area_m2",
    "polygon_self_intersects",
    "speed_kmh",
]
