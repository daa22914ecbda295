"""Central configuration for the fleet telemetry engine.

All values are constants imported by the rest of the package. Each one can
be overridden from the environment (optionally via a local `.env`), which
lets an ingestion service tune thresholds without code changes.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

from .utils import as_bool


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    return as_bool(os.getenv(key), default)


# Load .env from the current directory or any parent folder.
load_dotenv()


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------
# Mean Earth radius used by every distance, speed and bearing computation.
EARTH_RADIUS_KM = 6371.0

# Tolerance (degrees) below which two positions are treated as identical.
COORDINATE_EQUALITY_TOLERANCE_DEG = _env_float(
    "COORDINATE_EQUALITY_TOLERANCE_DEG", 1e-6
)

# Decimal places kept on latitude/longitude after sanitisation (~1.1 mm).
COORDINATE_DECIMAL_PLACES = 8

# Prepared shapely polygons kept in memory for runtime containment checks.
GEOFENCE_POLYGON_CACHE_SIZE = _env_int("GEOFENCE_POLYGON_CACHE_SIZE", 256)


# ---------------------------------------------------------------------------
# Coordinate validation
# ---------------------------------------------------------------------------
# Reports stamped further than this into the future are rejected.
MAX_FUTURE_SKEW_SECONDS = _env_int("MAX_FUTURE_SKEW_SECONDS", 5 * 60)

MAX_ACCURACY_M = 1000.0
MAX_BATCH_SIZE = _env_int("MAX_BATCH_SIZE", 1000)

# When True, out-of-range optional metadata (accuracy, heading, ...) rejects
# the whole coordinate. Otherwise the field is dropped with a warning.
TELEMETRY_STRICT_METADATA = _env_bool("TELEMETRY_STRICT_METADATA", False)


# ---------------------------------------------------------------------------
# Movement segmentation
# ---------------------------------------------------------------------------
# Intervals slower than this (km/h) are idle.
STATIONARY_SPEED_THRESHOLD_KMH = _env_float("STATIONARY_SPEED_THRESHOLD_KMH", 2.0)

# Idle runs must last strictly longer than this (minutes) to become a stop.
MIN_STOP_MINUTES = _env_float("MIN_STOP_MINUTES", 5.0)


# ---------------------------------------------------------------------------
# Anomaly detection
# ---------------------------------------------------------------------------
# Ground vehicles cannot exceed this speed (km/h); faster intervals teleport.
TELEPORT_SPEED_KMH = _env_float("TELEPORT_SPEED_KMH", 300.0)

# A stuck finding needs more than this many identical consecutive reports.
STUCK_MIN_RUN = _env_int("STUCK_MIN_RUN", 10)

# Drift is only scanned over the leading window of a sequence.
DRIFT_WINDOW = _env_int("DRIFT_WINDOW", 20)
DRIFT_MIN_COUNT = _env_int("DRIFT_MIN_COUNT", 10)
DRIFT_MIN_DISTANCE_KM = _env_float("DRIFT_MIN_DISTANCE_KM", 0.005)
DRIFT_MAX_DISTANCE_KM = _env_float("DRIFT_MAX_DISTANCE_KM", 0.05)


# ---------------------------------------------------------------------------
# Quality scoring
# ---------------------------------------------------------------------------
QUALITY_MEDIUM_ACCURACY_M = _env_float("QUALITY_MEDIUM_ACCURACY_M", 20.0)
QUALITY_LOW_ACCURACY_M = _env_float("QUALITY_LOW_ACCURACY_M", 50.0)
QUALITY_MAX_IMPLIED_SPEED_KMH = _env_float("QUALITY_MAX_IMPLIED_SPEED_KMH", 200.0)
QUALITY_SPEED_MISMATCH_KMH = _env_float("QUALITY_SPEED_MISMATCH_KMH", 20.0)
QUALITY_LOW_BATTERY_PERCENT = _env_float("QUALITY_LOW_BATTERY_PERCENT", 20.0)
QUALITY_WEAK_SIGNAL_PERCENT = _env_float("QUALITY_WEAK_SIGNAL_PERCENT", 30.0)


# ---------------------------------------------------------------------------
# Geofences
# ---------------------------------------------------------------------------
GEOFENCE_MIN_RADIUS_M = 10.0
GEOFENCE_MAX_RADIUS_M = 50_000.0
GEOFENCE_MIN_POLYGON_POINTS = 3
GEOFENCE_MAX_POLYGON_POINTS = 50
GEOFENCE_MAX_NAME_LENGTH = 100

# Advisory thresholds reported as geometry issues, never as errors.
GEOFENCE_LARGE_RADIUS_M = 10_000.0
GEOFENCE_MIN_AREA_M2 = 100.0


# ---------------------------------------------------------------------------
# Location queries
# ---------------------------------------------------------------------------
QUERY_MAX_LIMIT = 10_000
QUERY_LARGE_LIMIT = 5_000
QUERY_LARGE_RANGE_DAYS = 90
QUERY_LARGE_AREA_KM2 = 10_000.0


# ---------------------------------------------------------------------------
# Streaming state and performance
# ---------------------------------------------------------------------------
# Vehicles silent for longer than this are forgotten by the state store.
VEHICLE_STATE_TTL_SECONDS = _env_int("VEHICLE_STATE_TTL_SECONDS", 24 * 3600)
VEHICLE_STATE_MAX_VEHICLES = _env_int("VEHICLE_STATE_MAX_VEHICLES", 100_000)
VEHICLE_STATE_SHARDS = _env_int("VEHICLE_STATE_SHARDS", 16)

# Threads used when analysing a mixed-vehicle batch.
TELEMETRY_MAX_WORKERS = _env_int("TELEMETRY_MAX_WORKERS", 4)

# Fuel model for efficiency scores: car, van or truck.
DEFAULT_VEHICLE_TYPE = (os.getenv("DEFAULT_VEHICLE_TYPE") or "car").strip().lower()


# ---------------------------------------------------------------------------
# Excel formatting
# ---------------------------------------------------------------------------
EXCEL_AUTOSIZE_COLUMNS = True
EXCEL_AUTOSIZE_MAX_WIDTH = 50  # characters
EXCEL_AUTOSIZE_MIN_WIDTH = 6  # characters
EXCEL_AUTOSIZE_PADDING = 2  # extra characters added to the detected max
EXCEL_AUTOSIZE_MAX_ROWS = 5000  # skip autosize for very large sheets
