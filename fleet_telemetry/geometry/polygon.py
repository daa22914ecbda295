"""Polygon helpers for geofences.

Two families live here and must not be mixed up:

* ``polygon_area_m2`` and ``polygon_self_intersects`` are cheap approximations
  used only for creation-time advisories.
* ``point_in_polygon`` is the exact runtime containment test (shapely).
"""

from __future__ import annotations

import threading
from typing import Sequence, Tuple

from cachetools import LRUCache, cached
import numpy as np
from numpy.typing import NDArray
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError
from shapely.geometry import Point, Polygon
from shapely.prepared import PreparedGeometry, prep

from ..config import GEOFENCE_POLYGON_CACHE_SIZE
from .kernel import Positioned, distance_km

MetricArray = NDArray[np.float64]

# Closing vertex this close to the first one (km) hints at a folded outline.
_SELF_INTERSECTION_CLOSURE_KM = 0.001


def point_in_polygon(point: Positioned, vertices: Sequence[Positioned]) -> bool:
    """Return True when ``point`` lies inside or on the polygon boundary."""

    if len(vertices) < 3:
        return False
    key = tuple((float(v.latitude), float(v.longitude)) for v in vertices)
    prepared = _prepared_polygon(key)
    return bool(prepared.covers(Point(point.longitude, point.latitude)))


@cached(cache=LRUCache(maxsize=max(1, GEOFENCE_POLYGON_CACHE_SIZE)), lock=threading.RLock())
def _prepared_polygon(vertices: Tuple[Tuple[float, float], ...]) -> PreparedGeometry:
    # shapely works in (x, y) = (lon, lat).
    polygon = Polygon([(lon, lat) for lat, lon in vertices])
    if not polygon.is_valid:
        # Repair bow-ties so covers() still answers for the enclosed area.
        polygon = polygon.buffer(0)
    return prep(polygon)


def polygon_area_m2(vertices: Sequence[Positioned]) -> float:
    """Approximate polygon area via the shoelace formula in a local metric CRS."""

    if len(vertices) < 3:
        return 0.0
    metric = _project_to_local_metric(vertices)
    x = metric[:, 0]
    y = metric[:, 1]
    shoelace = np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))
    return float(abs(shoelace) / 2.0)


def polygon_self_intersects(vertices: Sequence[Positioned]) -> bool:
    """Heuristic self-intersection check.

    Flags outlines whose last vertex lands on the first one, the usual sign
    of a hand-drawn shape folding back over itself. This is an advisory
    approximation, not an exact edge-crossing test.
    """

    if len(vertices) < 4:
        return False
    gap = distance_km(vertices[0], vertices[-1])
    return gap < _SELF_INTERSECTION_CLOSURE_KM


def _project_to_local_metric(vertices: Sequence[Positioned]) -> MetricArray:
    transformer = _build_local_transformer(vertices)
    lats = np.asarray([v.latitude for v in vertices], dtype=float)
    lons = np.asarray([v.longitude for v in vertices], dtype=float)
    xs, ys = transformer.transform(lons, lats)
    return np.column_stack((xs, ys)).astype(float, copy=False)


def _build_local_transformer(vertices: Sequence[Positioned]) -> Transformer:
    """Build a local UTM transformer centred on the provided vertices."""

    mean_lat = float(np.mean([v.latitude for v in vertices]))
    mean_lon = float(np.mean([v.longitude for v in vertices]))
    zone = int((mean_lon + 180.0) // 6.0) + 1
    zone = max(1, min(zone, 60))
    epsg = 32600 + zone if mean_lat >= 0 else 32700 + zone
    try:
        target_crs = CRS.from_epsg(epsg)
    except CRSError:
        target_crs = CRS.from_epsg(3857)
    return _transformer_for(target_crs.to_epsg() or 3857)


@cached(cache=LRUCache(maxsize=64), lock=threading.RLock())
def _transformer_for(epsg: int) -> Transformer:
    return Transformer.from_crs(CRS.from_epsg(4326), CRS.from_epsg(epsg), always_xy=True)


__all__ = ["point_in_polygon", "polygon_area_m2", "polygon_self_intersects"]
