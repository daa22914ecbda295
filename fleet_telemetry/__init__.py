"""GPS telemetry validation and movement analytics package."""

from .engine import (
    contains,
    detect_anomalies,
    evaluate_geofence,
    sanitize_coordinate,
    score_quality,
    segment_movement,
    validate_batch,
    validate_coordinate,
    validate_geofence,
    validate_location_query,
)
from .errors import (
    BatchValidationError,
    CoordinateValidationError,
    GeofenceGeometryError,
    InputFormatError,
    TelemetryError,
)
from .models import Coordinate, GeoPoint, Geofence, RawCoordinate
from .services import TelemetryService, TelemetryServiceConfig

__all__ = [
    "BatchValidationError",
    "Coordinate",
    "CoordinateValidationError",
    "GeoPoint",
    "Geofence",
    "GeofenceGeometryError",
    "InputFormatError",
    "RawCoordinate",
    "TelemetryError",
    "TelemetryService",
    "TelemetryServiceConfig",
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
