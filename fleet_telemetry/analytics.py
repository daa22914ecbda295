"""Fleet analytics built on the movement, geofence and geometry layers.

Pure transformations: callers pass validated coordinates (or reports they
already computed) and get plain dataclasses or DataFrames back.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .geometry import distance_km, distances_km
from .models import ComplianceReport, Coordinate, Severity, Stop
from .movement import MovementSummary, MovementTotals

IDEAL_SPEED_KMH = 50.0
EXCESSIVE_IDLE_RATIO = 0.3
SLOW_AVERAGE_SPEED_KMH = 25.0
CONGESTION_SPEED_KMH = 10.0
CONGESTION_MIN_DISTANCE_KM = 0.5
EXCESSIVE_SPEED_KMH = 80.0
MAX_OPTIMISATION_POTENTIAL = 25.0
TOP_LOCATIONS = 10
TOP_VIOLATORS = 5

# Flat consumption rates, litres per 100 km.
FUEL_CONSUMPTION_L_PER_100KM = {"car": 8.0, "van": 12.0, "truck": 25.0}
SAFE_AVERAGE_SPEED_KMH = 80.0
# No schedule data is available, so punctuality is a fixed baseline.
PUNCTUALITY_BASELINE = 85.0
SCORE_RECOMMENDATION_THRESHOLD = 70.0

HOURLY_COLUMNS = [
    "hour",
    "vehicle_count",
    "interval_count",
    "total_distance_km",
    "average_speed_kmh",
]


@dataclass(slots=True)
class PopularLocation:
    location: Coordinate
    visit_count: int
    total_duration_minutes: float = 0.0

    @property
    def average_stay_minutes(self) -> float:
        return self.total_duration_minutes / self.visit_count if self.visit_count else 0.0


@dataclass(slots=True)
class RouteIssue:
    type: str
    description: str
    impact: Severity
    suggestion: str
    locations: List[Coordinate] = field(default_factory=list)


@dataclass(slots=True)
class RouteEfficiency:
    efficiency: float
    optimization_potential: float
    issues: List[RouteIssue] = field(default_factory=list)


@dataclass(slots=True)
class InefficientSegment:
    start: Coordinate
    end: Coordinate
    reason: str
    suggestion: str


@dataclass(slots=True)
class RouteOptimization:
    inefficient_segments: List[InefficientSegment] = field(default_factory=list)
    total_optimization_potential: float = 0.0


@dataclass(slots=True)
class ComplianceSummary:
    overall_compliance: float
    violations_by_geofence: Dict[str, int] = field(default_factory=dict)
    top_violators: List[tuple[str, int]] = field(default_factory=list)


@dataclass(slots=True)
class PerformanceScore:
    overall_score: float
    efficiency: float
    safety: float
    punctuality: float
    fuel_usage: float
    fuel_efficiency_kmpl: float = 0.0
    recommendations: List[str] = field(default_factory=list)


@dataclass(slots=True)
class FleetRankings:
    """Vehicles ordered best first; ties fall back to the vehicle id."""

    efficiency: List[tuple[str, float]] = field(default_factory=list)
    distance: List[tuple[str, float]] = field(default_factory=list)
    fuel_efficiency: List[tuple[str, float]] = field(default_factory=list)


def _by_vehicle(coordinates: Iterable[Coordinate]) -> Dict[str, List[Coordinate]]:
    grouped: Dict[str, List[Coordinate]] = defaultdict(list)
    for coord in coordinates:
        grouped[coord.vehicle_id].append(coord)
    for sequence in grouped.values():
        sequence.sort(key=lambda c: c.timestamp)
    return grouped


def _interval_frame(coordinates: Iterable[Coordinate]) -> pd.DataFrame:
    rows: List[dict] = []
    for vehicle_id, sequence in _by_vehicle(coordinates).items():
        distances = distances_km(sequence)
        for i, (prev, curr) in enumerate(zip(sequence, sequence[1:])):
            seconds = (curr.timestamp - prev.timestamp).total_seconds()
            distance = float(distances[i])
            rows.append(
                {
                    "vehicle_id": vehicle_id,
                    "hour": curr.timestamp.hour,
                    "distance_km": distance,
                    "speed_kmh": distance * 3600.0 / seconds if seconds > 0 else 0.0,
                }
            )
    return pd.DataFrame(rows, columns=["vehicle_id", "hour", "distance_km", "speed_kmh"])


def hourly_activity(coordinates: Iterable[Coordinate]) -> pd.DataFrame:
    """Per-hour (UTC) activity across vehicles; always 24 rows, hour 0..23.

    Each interval between consecutive fixes of one vehicle is attributed to
    the hour of its later fix.
    """

    intervals = _interval_frame(coordinates)
    grouped = intervals.groupby("hour").agg(
        vehicle_count=("vehicle_id", "nunique"),
        interval_count=("vehicle_id", "size"),
        total_distance_km=("distance_km", "sum"),
        average_speed_kmh=("speed_kmh", "mean"),
    )
    frame = grouped.reindex(range(24)).fillna(0.0)
    frame.index.name = "hour"
    frame = frame.reset_index()
    for column in ("vehicle_count", "interval_count"):
        frame[column] = frame[column].astype(int)
    return frame[HOURLY_COLUMNS]


def popular_locations(
    coordinates: Sequence[Coordinate],
    radius_meters: float = 100.0,
    top: int = TOP_LOCATIONS,
) -> List[PopularLocation]:
    """Greedy clustering of fixes around the first fix of each cluster.

    Consecutive fixes of a vehicle that stay in the same cluster add their
    elapsed time to the cluster's total duration.
    """

    clusters: List[PopularLocation] = []
    last_cluster: Dict[str, tuple[int, Coordinate]] = {}
    for coord in coordinates:
        index = next(
            (
                i
                for i, cluster in enumerate(clusters)
                if distance_km(coord, cluster.location) * 1000.0 <= radius_meters
            ),
            None,
        )
        if index is None:
            clusters.append(PopularLocation(location=coord, visit_count=1))
            index = len(clusters) - 1
        else:
            clusters[index].visit_count += 1
        previous = last_cluster.get(coord.vehicle_id)
        if previous is not None and previous[0] == index:
            elapsed = (coord.timestamp - previous[1].timestamp).total_seconds() / 60.0
            clusters[index].total_duration_minutes += max(0.0, elapsed)
        last_cluster[coord.vehicle_id] = (index, coord)
    ranked = sorted(clusters, key=lambda c: c.visit_count, reverse=True)
    return ranked[: max(0, top)]


def route_efficiency(
    summary: MovementSummary, stops: Optional[Sequence[Stop]] = None
) -> RouteEfficiency:
    """Score a trip against an ideal 50 km/h average, with idle/speed issues."""

    totals = summary.totals
    stop_list = list(stops if stops is not None else summary.stops)
    issues: List[RouteIssue] = []
    total_minutes = totals.moving_minutes + totals.idle_minutes
    if totals.idle_minutes > totals.moving_minutes * EXCESSIVE_IDLE_RATIO:
        share = totals.idle_minutes / total_minutes * 100.0 if total_minutes else 0.0
        issues.append(
            RouteIssue(
                type="excessive_idle",
                description=(
                    f"Vehicle idle for {round(totals.idle_minutes)} minutes "
                    f"({round(share)}% of total time)"
                ),
                impact=Severity.HIGH,
                suggestion="Review stops and optimize scheduling to reduce idle time",
                locations=[stop.location for stop in stop_list],
            )
        )
    if totals.average_speed_kmh < SLOW_AVERAGE_SPEED_KMH:
        issues.append(
            RouteIssue(
                type="slow_movement",
                description=f"Low average speed: {round(totals.average_speed_kmh)} km/h",
                impact=Severity.MEDIUM,
                suggestion=(
                    "Consider alternative routes or departure times to avoid congestion"
                ),
            )
        )

    if total_minutes > 0:
        ideal_hours = totals.distance_km / IDEAL_SPEED_KMH
        efficiency = min(100.0, ideal_hours / (total_minutes / 60.0) * 100.0)
    else:
        efficiency = 0.0
    return RouteEfficiency(
        efficiency=efficiency,
        optimization_potential=max(0.0, 100.0 - efficiency),
        issues=issues,
    )


def route_optimizations(sequence: Sequence[Coordinate]) -> RouteOptimization:
    """Flag congested and over-speed intervals; potential is capped at 25%."""

    result = RouteOptimization()
    if len(sequence) < 2:
        return result
    distances = distances_km(sequence)
    for i, (prev, curr) in enumerate(zip(sequence, sequence[1:])):
        seconds = (curr.timestamp - prev.timestamp).total_seconds()
        distance = float(distances[i])
        speed = distance * 3600.0 / seconds if seconds > 0 else 0.0
        if speed < CONGESTION_SPEED_KMH and distance > CONGESTION_MIN_DISTANCE_KM:
            result.inefficient_segments.append(
                InefficientSegment(
                    prev,
                    curr,
                    "Traffic congestion or inefficient route",
                    "Consider alternative route or departure time",
                )
            )
        if speed > EXCESSIVE_SPEED_KMH:
            result.inefficient_segments.append(
                InefficientSegment(
                    prev,
                    curr,
                    "Excessive speed increases fuel consumption",
                    "Maintain optimal speed (60-80 km/h)",
                )
            )
    result.total_optimization_potential = min(
        len(result.inefficient_segments) / len(sequence) * 100.0,
        MAX_OPTIMISATION_POTENTIAL,
    )
    return result


def fuel_efficiency(distance_km: float, vehicle_type: str = "car") -> float:
    """Estimated km per litre from the flat consumption rate of ``vehicle_type``."""

    try:
        rate = FUEL_CONSUMPTION_L_PER_100KM[vehicle_type]
    except KeyError as exc:
        allowed = ", ".join(sorted(FUEL_CONSUMPTION_L_PER_100KM))
        raise ValueError(
            f"Unknown vehicle type {vehicle_type!r}. Must be one of: {allowed}"
        ) from exc
    litres = distance_km * rate / 100.0
    return distance_km / litres if litres > 0 else 0.0


def vehicle_performance_score(
    totals: MovementTotals, vehicle_type: str = "car"
) -> PerformanceScore:
    """Score a vehicle 0-100 from speed, idle share, safety and fuel use.

    Efficiency averages closeness to the ideal 50 km/h and the idle share
    (half the time idle scores 0). Safety is 90 up to an 80 km/h average and
    loses a point per km/h above it, never below 50. The overall score is
    the mean of efficiency, safety, punctuality and fuel usage.
    """

    recommendations: List[str] = []
    speed_score = max(0.0, 100.0 - abs(totals.average_speed_kmh - IDEAL_SPEED_KMH) * 2.0)
    total_minutes = totals.moving_minutes + totals.idle_minutes
    idle_ratio = totals.idle_minutes / total_minutes if total_minutes > 0 else 0.0
    idle_score = max(0.0, 100.0 - idle_ratio * 200.0)
    efficiency = (speed_score + idle_score) / 2.0
    if efficiency < SCORE_RECOMMENDATION_THRESHOLD:
        recommendations.append(
            "Optimize routes to reduce idle time and maintain consistent speed"
        )

    if totals.average_speed_kmh <= SAFE_AVERAGE_SPEED_KMH:
        safety = 90.0
    else:
        safety = max(50.0, 90.0 - (totals.average_speed_kmh - SAFE_AVERAGE_SPEED_KMH))
    if safety < 80.0:
        recommendations.append("Implement speed monitoring and driver training programs")

    kmpl = fuel_efficiency(totals.distance_km, vehicle_type)
    fuel_usage = min(100.0, kmpl * 10.0)
    if fuel_usage < SCORE_RECOMMENDATION_THRESHOLD:
        recommendations.append(
            "Implement eco-driving techniques to improve fuel efficiency"
        )

    return PerformanceScore(
        overall_score=(efficiency + safety + PUNCTUALITY_BASELINE + fuel_usage) / 4.0,
        efficiency=efficiency,
        safety=safety,
        punctuality=PUNCTUALITY_BASELINE,
        fuel_usage=fuel_usage,
        fuel_efficiency_kmpl=kmpl,
        recommendations=recommendations,
    )


def fleet_rankings(
    vehicles: Mapping[str, Tuple[MovementTotals, PerformanceScore]],
) -> FleetRankings:
    """Rank vehicles by overall score, distance driven and fuel efficiency."""

    def ranked(items: Iterable[tuple[str, float]]) -> List[tuple[str, float]]:
        return sorted(items, key=lambda item: (-item[1], item[0]))

    return FleetRankings(
        efficiency=ranked(
            (vid, score.overall_score) for vid, (_, score) in vehicles.items()
        ),
        distance=ranked((vid, totals.distance_km) for vid, (totals, _) in vehicles.items()),
        fuel_efficiency=ranked(
            (vid, score.fuel_efficiency_kmpl) for vid, (_, score) in vehicles.items()
        ),
    )


def compliance_summary(
    reports: Iterable[ComplianceReport],
    geofence_names: Optional[Mapping[str, str]] = None,
    top: int = TOP_VIOLATORS,
) -> ComplianceSummary:
    """Fleet-wide compliance across geofence reports.

    Compliance is the share of entry/exit events that were not violations,
    100 when there were no events at all.
    """

    names = geofence_names or {}
    total_events = 0
    total_violations = 0
    by_geofence: Dict[str, int] = {}
    by_vehicle: Dict[str, int] = defaultdict(int)
    for report in reports:
        total_events += report.total_entries + report.total_exits
        total_violations += report.violations_count
        label = names.get(report.geofence_id, report.geofence_id)
        by_geofence[label] = by_geofence.get(label, 0) + report.violations_count
        for vehicle_id, activity in report.per_vehicle_activity.items():
            by_vehicle[vehicle_id] += activity.violations

    if total_events:
        overall = (total_events - total_violations) / total_events * 100.0
    else:
        overall = 100.0
    violators = sorted(by_vehicle.items(), key=lambda item: (-item[1], item[0]))
    return ComplianceSummary(
        overall_compliance=overall,
        violations_by_geofence=by_geofence,
        top_violators=violators[: max(0, top)],
    )


__all__ = [
    "ComplianceSummary",
    "FleetRankings",
    "InefficientSegment",
    "PerformanceScore",
    "PopularLocation",
    "RouteEfficiency",
    "RouteIssue",
    "RouteOptimization",
    "compliance_summary",
    "fleet_rankings",
    "fuel_efficiency",
    "hourly_activity",
    "popular_locations",
    "route_efficiency",
    "route_optimizations",
    "vehicle_performance_score",
]
