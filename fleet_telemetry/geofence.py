"""Geofence containment, compliance reporting and live entry/exit events."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .errors import GeofenceGeometryError
from .geometry import Positioned, point_in_circle, point_in_polygon
from .models import (
    ComplianceReport,
    Coordinate,
    Geofence,
    GeofenceEvent,
    GeofenceEventType,
    GeofenceKind,
    VehicleGeofenceActivity,
)
from .state import VehicleStateStore
from .utils import to_utc_aware

_LOG = logging.getLogger(__name__)

ViolationPolicy = Callable[[Geofence, str, Coordinate], bool]


def contains(point: Positioned, geofence: Geofence) -> bool:
    """Return True when ``point`` is inside ``geofence`` (boundary inclusive).

    Raises:
        GeofenceGeometryError: The geofence lacks the geometry its kind needs.
    """

    if geofence.kind == GeofenceKind.CIRCLE:
        if geofence.center is None or geofence.radius_meters is None:
            raise GeofenceGeometryError(
                [f"Circle geofence {geofence.id!r} requires center and radius"]
            )
        return point_in_circle(point, geofence.center, geofence.radius_meters)
    if geofence.kind == GeofenceKind.POLYGON:
        if len(geofence.polygon_points) < 3:
            raise GeofenceGeometryError(
                [f"Polygon geofence {geofence.id!r} requires at least 3 points"]
            )
        return point_in_polygon(point, geofence.polygon_points)
    raise GeofenceGeometryError([f"Unsupported geofence kind {geofence.kind!r}"])


def default_violation_policy(
    geofence: Geofence, vehicle_id: str, coordinate: Coordinate
) -> bool:
    """Unassigned vehicles violate an active fence; restricted fences flag everyone."""

    if not geofence.active:
        return False
    if geofence.restricted:
        return True
    return vehicle_id not in geofence.assigned_vehicle_ids


def _group_by_vehicle(
    coordinates: Iterable[Coordinate], start: datetime, end: datetime
) -> Dict[str, List[Coordinate]]:
    grouped: Dict[str, List[Coordinate]] = defaultdict(list)
    for coord in coordinates:
        if start <= coord.timestamp <= end:
            grouped[coord.vehicle_id].append(coord)
    for sequence in grouped.values():
        sequence.sort(key=lambda c: c.timestamp)
    return grouped


def evaluate_geofence(
    coordinates: Sequence[Coordinate],
    geofence: Geofence,
    window_start: datetime,
    window_end: datetime,
    *,
    violation_policy: Optional[ViolationPolicy] = None,
) -> ComplianceReport:
    """Recompute entry/exit/violation counts for one geofence over a window.

    Coordinates may mix vehicles. Every vehicle starts outside the fence, so
    a first fix already inside counts as an entry. Violations are counted
    once per entry.
    """

    start = to_utc_aware(window_start)
    end = to_utc_aware(window_end)
    report = ComplianceReport(geofence.id, start, end)
    if not geofence.active:
        return report

    policy = violation_policy or default_violation_policy
    for vehicle_id, sequence in _group_by_vehicle(coordinates, start, end).items():
        activity = VehicleGeofenceActivity()
        inside = False
        for coord in sequence:
            now_inside = contains(coord, geofence)
            if now_inside and not inside:
                violation = bool(policy(geofence, vehicle_id, coord))
                activity.entries += 1
                activity.violations += int(violation)
                report.events.append(
                    GeofenceEvent(
                        geofence.id, vehicle_id, GeofenceEventType.ENTRY, coord, violation
                    )
                )
            elif inside and not now_inside:
                activity.exits += 1
                report.events.append(
                    GeofenceEvent(geofence.id, vehicle_id, GeofenceEventType.EXIT, coord)
                )
            inside = now_inside
        if activity.entries or activity.exits:
            report.per_vehicle_activity[vehicle_id] = activity
            report.total_entries += activity.entries
            report.total_exits += activity.exits
            report.violations_count += activity.violations

    report.events.sort(key=lambda e: e.coordinate.timestamp)
    _LOG.debug(
        "Geofence %s: entries=%d exits=%d violations=%d",
        geofence.id,
        report.total_entries,
        report.total_exits,
        report.violations_count,
    )
    return report


class GeofenceMonitor:
    """Emit entry/exit events for coordinates as they arrive.

    Inside/outside state per vehicle is kept in a caller-owned
    :class:`VehicleStateStore`.
    """

    def __init__(
        self,
        geofences: Iterable[Geofence],
        store: Optional[VehicleStateStore] = None,
        violation_policy: Optional[ViolationPolicy] = None,
    ) -> None:
        self.store = store if store is not None else VehicleStateStore()
        self._policy = violation_policy or default_violation_policy
        self._geofences: Dict[str, Geofence] = {}
        self.update_geofences(geofences)

    def update_geofences(self, geofences: Iterable[Geofence]) -> None:
        self._geofences = {g.id: g for g in geofences if g.active}

    def process(self, coordinate: Coordinate) -> List[GeofenceEvent]:
        events: List[GeofenceEvent] = []
        with self.store.locked(coordinate.vehicle_id) as state:
            # Fences that were removed or deactivated no longer hold the vehicle.
            state.inside_geofences &= set(self._geofences)
            for geofence_id in sorted(self._geofences):
                geofence = self._geofences[geofence_id]
                was_inside = geofence_id in state.inside_geofences
                now_inside = contains(coordinate, geofence)
                if now_inside and not was_inside:
                    state.inside_geofences.add(geofence_id)
                    violation = bool(
                        self._policy(geofence, coordinate.vehicle_id, coordinate)
                    )
                    events.append(
                        GeofenceEvent(
                            geofence_id,
                            coordinate.vehicle_id,
                            GeofenceEventType.ENTRY,
                            coordinate,
                            violation,
                        )
                    )
                elif was_inside and not now_inside:
                    state.inside_geofences.discard(geofence_id)
                    events.append(
                        GeofenceEvent(
                            geofence_id,
                            coordinate.vehicle_id,
                            GeofenceEventType.EXIT,
                            coordinate,
                        )
                    )
        for event in events:
            if event.violation:
                _LOG.info(
                    "Geofence violation: vehicle=%s geofence=%s",
                    event.vehicle_id,
                    event.geofence_id,
                )
        return events


__all__ = [
    "GeofenceMonitor",
    "ViolationPolicy",
    "contains",
    "default_violation_policy",
    "evaluate_geofence",
]
