"""Telemetry analysis service.

Validates a mixed batch of raw reports, groups the accepted coordinates by
vehicle and analyses each vehicle in a worker pool. Geofence compliance and
fleet-wide aggregates are computed once every vehicle is done. The pure
component functions do the work; this module only orchestrates them.
"""

from __future__ import annotations

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from ..analytics import (
    FUEL_CONSUMPTION_L_PER_100KM,
    ComplianceSummary,
    FleetRankings,
    PerformanceScore,
    PopularLocation,
    RouteEfficiency,
    RouteOptimization,
    compliance_summary,
    fleet_rankings,
    hourly_activity,
    popular_locations,
    route_efficiency,
    route_optimizations,
    vehicle_performance_score,
)
from ..anomalies import AnomalyReport, detect_anomalies
from ..config import (
    DEFAULT_VEHICLE_TYPE,
    MIN_STOP_MINUTES,
    STATIONARY_SPEED_THRESHOLD_KMH,
    TELEMETRY_MAX_WORKERS,
)
from ..geofence import ViolationPolicy, evaluate_geofence
from ..models import ComplianceReport, Coordinate, Geofence, QualityLevel
from ..movement import MovementSummary, segment_movement
from ..quality import score_quality
from ..utils import to_jsonable
from ..validation import (
    RawInput,
    ValidationIssue,
    count_sequence_issues,
    validate_coordinate,
)

TimeWindow = Tuple[datetime, datetime]


@dataclass(slots=True)
class RejectedRow:
    index: int
    raw: Any
    issues: List[ValidationIssue]


@dataclass(slots=True)
class VehicleAnalysis:
    vehicle_id: str
    coordinate_count: int
    movement: MovementSummary
    anomalies: AnomalyReport
    efficiency: RouteEfficiency
    optimization: RouteOptimization
    performance: PerformanceScore
    quality_counts: Dict[str, int] = field(default_factory=dict)
    duplicates: int = 0
    out_of_sequence_count: int = 0
    warnings: List[str] = field(default_factory=list)


@dataclass(slots=True)
class TelemetryAnalysis:
    vehicles: Dict[str, VehicleAnalysis] = field(default_factory=dict)
    rejected: List[RejectedRow] = field(default_factory=list)
    geofence_reports: List[ComplianceReport] = field(default_factory=list)
    compliance: Optional[ComplianceSummary] = None
    hourly: pd.DataFrame = field(default_factory=lambda: hourly_activity([]))
    popular_locations: List[PopularLocation] = field(default_factory=list)
    rankings: Optional[FleetRankings] = None
    failed_vehicles: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Plain JSON-friendly structure (see ``utils.json_dumps_sorted``)."""

        return {
            "vehicles": to_jsonable(self.vehicles),
            "rejected": [
                {
                    "index": row.index,
                    "issues": [
                        {"field": i.field, "message": i.message, "kind": i.kind.value}
                        for i in row.issues
                    ],
                }
                for row in self.rejected
            ],
            "geofence_reports": to_jsonable(self.geofence_reports),
            "compliance": to_jsonable(self.compliance),
            "hourly": to_jsonable(self.hourly.to_dict(orient="records")),
            "popular_locations": to_jsonable(self.popular_locations),
            "rankings": to_jsonable(self.rankings),
            "failed_vehicles": list(self.failed_vehicles),
        }


@dataclass(slots=True)
class TelemetryServiceConfig:
    max_workers: int = TELEMETRY_MAX_WORKERS
    stationary_speed_threshold_kmh: float = STATIONARY_SPEED_THRESHOLD_KMH
    min_stop_minutes: float = MIN_STOP_MINUTES
    vehicle_type: str = DEFAULT_VEHICLE_TYPE
    strict_metadata: Optional[bool] = None
    now: Optional[Callable[[], datetime]] = None
    violation_policy: Optional[ViolationPolicy] = None
    logger: logging.Logger | None = None


class TelemetryService:
    def __init__(self, config: TelemetryServiceConfig | None = None):
        self.config = config or TelemetryServiceConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)
        if self.config.vehicle_type not in FUEL_CONSUMPTION_L_PER_100KM:
            allowed = ", ".join(sorted(FUEL_CONSUMPTION_L_PER_100KM))
            raise ValueError(
                f"Unknown vehicle type {self.config.vehicle_type!r}. Must be one of: {allowed}"
            )

    def validate(
        self, raws: Sequence[RawInput]
    ) -> Tuple[Dict[str, List[Coordinate]], List[RejectedRow], Dict[str, List[str]]]:
        """Validate ``raws`` and group accepted coordinates by vehicle.

        Vehicles keep input order here so sequence issues can be counted
        before sorting.
        """

        now = self.config.now() if self.config.now else None
        grouped: Dict[str, List[Coordinate]] = defaultdict(list)
        warnings: Dict[str, List[str]] = defaultdict(list)
        rejected: List[RejectedRow] = []
        for index, raw in enumerate(raws):
            result = validate_coordinate(
                raw, now=now, strict_metadata=self.config.strict_metadata
            )
            if not result.is_valid or result.coordinate is None:
                rejected.append(RejectedRow(index, raw, result.errors))
                continue
            coordinate = result.coordinate
            grouped[coordinate.vehicle_id].append(coordinate)
            warnings[coordinate.vehicle_id].extend(
                f"Row {index}: {issue}" for issue in result.warnings
            )
        if rejected:
            self._log.info(
                "Rejected %d of %d raw reports during validation",
                len(rejected),
                len(raws),
            )
        return dict(grouped), rejected, dict(warnings)

    def analyze_vehicle(
        self,
        vehicle_id: str,
        coordinates: Sequence[Coordinate],
        warnings: Sequence[str] = (),
    ) -> VehicleAnalysis:
        duplicates, out_of_sequence = count_sequence_issues(coordinates)
        sequence = sorted(coordinates, key=lambda c: c.timestamp)
        movement = segment_movement(
            sequence,
            stationary_speed_threshold_kmh=self.config.stationary_speed_threshold_kmh,
            min_stop_minutes=self.config.min_stop_minutes,
        )
        quality_counts = {level.value: 0 for level in QualityLevel}
        previous: Optional[Coordinate] = None
        for coordinate in sequence:
            assessment = score_quality(coordinate, previous)
            quality_counts[assessment.quality.value] += 1
            previous = coordinate
        return VehicleAnalysis(
            vehicle_id=vehicle_id,
            coordinate_count=len(sequence),
            movement=movement,
            anomalies=detect_anomalies(sequence),
            efficiency=route_efficiency(movement),
            optimization=route_optimizations(sequence),
            performance=vehicle_performance_score(
                movement.totals, self.config.vehicle_type
            ),
            quality_counts=quality_counts,
            duplicates=duplicates,
            out_of_sequence_count=out_of_sequence,
            warnings=list(warnings),
        )

    def analyze_batch(
        self,
        raws: Sequence[RawInput],
        geofences: Sequence[Geofence] = (),
        window: TimeWindow | None = None,
    ) -> TelemetryAnalysis:
        """Validate and analyse a mixed-vehicle batch of raw reports.

        Args:
            raws: Raw reports in arrival order.
            geofences: Geofences to evaluate compliance for.
            window: Inclusive ``(start, end)`` for geofence evaluation;
                defaults to the span of the accepted coordinates.
        """

        grouped, rejected, warnings = self.validate(raws)
        analysis = TelemetryAnalysis(rejected=rejected)
        if not grouped:
            return analysis

        vehicle_ids = sorted(grouped)
        max_workers = max(1, min(self.config.max_workers, len(vehicle_ids)))
        self._log.info(
            "Analysing %d vehicles with %d worker(s)", len(vehicle_ids), max_workers
        )
        results: Dict[str, VehicleAnalysis] = {}
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_map = {
                executor.submit(
                    self.analyze_vehicle,
                    vehicle_id,
                    grouped[vehicle_id],
                    warnings.get(vehicle_id, ()),
                ): vehicle_id
                for vehicle_id in vehicle_ids
            }
            for future in as_completed(future_map):
                vehicle_id = future_map[future]
                try:
                    results[vehicle_id] = future.result()
                except Exception as exc:  # pragma: no cover - defensive logging
                    analysis.failed_vehicles.append(vehicle_id)
                    self._log.error(
                        "Vehicle %s analysis failed: %s", vehicle_id, exc, exc_info=True
                    )
        analysis.vehicles = {vid: results[vid] for vid in vehicle_ids if vid in results}
        analysis.failed_vehicles.sort()
        analysis.rankings = fleet_rankings(
            {
                vid: (vehicle.movement.totals, vehicle.performance)
                for vid, vehicle in analysis.vehicles.items()
            }
        )

        accepted = [c for vehicle_id in vehicle_ids for c in grouped[vehicle_id]]
        if geofences:
            start, end = window or (
                min(c.timestamp for c in accepted),
                max(c.timestamp for c in accepted),
            )
            analysis.geofence_reports = [
                evaluate_geofence(
                    accepted,
                    geofence,
                    start,
                    end,
                    violation_policy=self.config.violation_policy,
                )
                for geofence in geofences
            ]
            analysis.compliance = compliance_summary(
                analysis.geofence_reports, {g.id: g.name for g in geofences}
            )
        analysis.hourly = hourly_activity(accepted)
        analysis.popular_locations = popular_locations(
            sorted(accepted, key=lambda c: (c.timestamp, c.vehicle_id))
        )
        return analysis


__all__ = [
    "RejectedRow",
    "TelemetryAnalysis",
    "TelemetryService",
    "TelemetryServiceConfig",
    "VehicleAnalysis",
]
