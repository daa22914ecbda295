"""Public engine surface.

One import point for embedding callers; every function here is a pure
component call and keeps no state between calls.
"""

from __future__ import annotations

from .anomalies import AnomalyReport, detect_anomalies
from .geofence import GeofenceMonitor, contains, evaluate_geofence
from .movement import MovementSummary, MovementTotals, segment_movement
from .quality import RealTimeValidation, StreamingQualityValidator, score_quality
from .validation import (
    BatchValidationResult,
    GeofenceValidationResult,
    LocationQuery,
    QueryValidationResult,
    ValidationResult,
    sanitize_coordinate,
    validate_batch,
    validate_coordinate,
    validate_geofence,
    validate_location_query,
)

__all__ = [
    "AnomalyReport",
    "BatchValidationResult",
    "GeofenceMonitor",
    "GeofenceValidationResult",
    "LocationQuery",
    "MovementSummary",
    "MovementTotals",
    "QueryValidationResult",
    "RealTimeValidation",
    "StreamingQualityValidator",
    "ValidationResult",
    "contains",
    "detect_anomalies",
    "evaluate_geofence",
    "sanitize_coordinate",
    "score_quality",
    "segment_movement",
    "validate_batch",
    "validate_coordinate",
    "validate_geofence",
    "validate_location_query",
]
