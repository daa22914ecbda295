"""Validation and sanitisation of raw telemetry, geofences and queries.

Every validator walks all of its rules and returns the full list of
problems in one pass; nothing here raises for bad input unless the caller
asks for it through ``raise_for_errors``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .config import (
    COORDINATE_DECIMAL_PLACES,
    GEOFENCE_LARGE_RADIUS_M,
    GEOFENCE_MAX_NAME_LENGTH,
    GEOFENCE_MAX_POLYGON_POINTS,
    GEOFENCE_MAX_RADIUS_M,
    GEOFENCE_MIN_AREA_M2,
    GEOFENCE_MIN_POLYGON_POINTS,
    GEOFENCE_MIN_RADIUS_M,
    MAX_ACCURACY_M,
    MAX_BATCH_SIZE,
    MAX_FUTURE_SKEW_SECONDS,
    QUERY_LARGE_AREA_KM2,
    QUERY_LARGE_LIMIT,
    QUERY_LARGE_RANGE_DAYS,
    QUERY_MAX_LIMIT,
    TELEMETRY_STRICT_METADATA,
)
from .errors import BatchValidationError, CoordinateValidationError, GeofenceGeometryError
from .geometry import (
    BoundingBox,
    coordinates_equal,
    polygon_area_m2,
    polygon_self_intersects,
)
from .models import Coordinate, GeoPoint, Geofence, GeofenceKind, RawCoordinate
from .utils import as_finite_float, canonical_instant, parse_iso_datetime

_LOG = logging.getLogger(__name__)

RawInput = Union[RawCoordinate, Coordinate, Mapping[str, Any]]


class IssueKind(str, Enum):
    STRUCTURAL = "structural"
    RANGE = "range"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    field: str
    message: str
    kind: IssueKind = IssueKind.STRUCTURAL

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class ValidationResult:
    """Outcome of validating one raw report."""

    coordinate: Optional[Coordinate] = None
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors and self.coordinate is not None

    def raise_for_errors(self) -> Coordinate:
        """Return the coordinate or raise :class:`CoordinateValidationError`."""

        if self.errors or self.coordinate is None:
            raise CoordinateValidationError(self.errors)
        return self.coordinate


@dataclass(slots=True)
class BatchValidationResult:
    """Outcome of validating a batch; rejects are keyed by input index."""

    validated: List[Coordinate] = field(default_factory=list)
    rejected: Dict[int, List[ValidationIssue]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    duplicates: int = 0
    out_of_sequence_count: int = 0

    @property
    def is_valid(self) -> bool:
        return not self.errors and not self.rejected

    def raise_for_errors(self) -> List[Coordinate]:
        if self.errors:
            raise BatchValidationError(self.errors)
        if self.rejected:
            raise BatchValidationError(
                [
                    f"Coordinate at index {index}: "
                    + ", ".join(str(issue) for issue in issues)
                    for index, issues in sorted(self.rejected.items())
                ]
            )
        return self.validated


@dataclass(slots=True)
class GeofenceValidationResult:
    errors: List[str] = field(default_factory=list)
    geometry_issues: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise GeofenceGeometryError(self.errors)


@dataclass(slots=True)
class LocationQuery:
    """Filters an analytics/history collaborator may send before querying."""

    vehicle_ids: Sequence[str] = ()
    start: Any = None
    end: Any = None
    bounds: Optional[BoundingBox] = None
    limit: Optional[int] = None
    offset: Optional[int] = None


@dataclass(slots=True)
class QueryValidationResult:
    errors: List[str] = field(default_factory=list)
    performance_warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


# (field, lower, upper, upper_inclusive, message)
_OPTIONAL_RANGES = (
    ("accuracy", 0.0, MAX_ACCURACY_M, True, "GPS accuracy must be between 0 and 1000 meters"),
    ("speed", 0.0, None, True, "Speed cannot be negative"),
    ("heading", 0.0, 360.0, False, "Heading must be between 0 and 359 degrees"),
    ("battery_level", 0.0, 100.0, True, "Battery level must be between 0 and 100 percent"),
    ("signal_strength", 0.0, 100.0, True, "Signal strength must be between 0 and 100 percent"),
)


def _as_raw(raw: Any) -> Optional[RawCoordinate]:
    if isinstance(raw, RawCoordinate):
        return raw
    if isinstance(raw, Coordinate):
        return raw.to_raw()
    if isinstance(raw, Mapping):
        return RawCoordinate.from_mapping(raw)
    return None


def _normalise_vehicle_id(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    return None


def _check_position(
    name: str, value: Any, bound: float, errors: List[ValidationIssue]
) -> Optional[float]:
    number = as_finite_float(value)
    if number is None:
        errors.append(
            ValidationIssue(name, f"{name.capitalize()} is required and must be a number")
        )
        return None
    if not -bound <= number <= bound:
        errors.append(
            ValidationIssue(
                name,
                f"Invalid {name} {number}. {name.capitalize()} must be between "
                f"{-bound:g} and {bound:g}",
            )
        )
        return None
    return number


def _check_timestamp(
    value: Any, now: datetime, errors: List[ValidationIssue]
) -> Optional[datetime]:
    if value is None or (isinstance(value, str) and not value.strip()):
        errors.append(ValidationIssue("timestamp", "Timestamp is required"))
        return None
    parsed = parse_iso_datetime(value)
    if parsed is None:
        errors.append(
            ValidationIssue(
                "timestamp", "Invalid timestamp format. Expected ISO date string"
            )
        )
        return None
    instant = canonical_instant(parsed)
    if instant > now + timedelta(seconds=MAX_FUTURE_SKEW_SECONDS):
        errors.append(
            ValidationIssue(
                "timestamp",
                f"Timestamp cannot be more than {MAX_FUTURE_SKEW_SECONDS // 60} "
                "minutes in the future",
            )
        )
        return None
    return instant


def _check_optional_fields(
    raw: RawCoordinate,
) -> tuple[Dict[str, Optional[float]], List[ValidationIssue]]:
    values: Dict[str, Optional[float]] = {}
    issues: List[ValidationIssue] = []
    for name, lower, upper, upper_inclusive, message in _OPTIONAL_RANGES:
        value = getattr(raw, name)
        if value is None:
            values[name] = None
            continue
        number = as_finite_float(value)
        in_range = number is not None and number >= lower
        if in_range and upper is not None:
            in_range = number <= upper if upper_inclusive else number < upper
        if not in_range:
            issues.append(ValidationIssue(name, message, IssueKind.RANGE))
            values[name] = None
            continue
        values[name] = number
    if raw.altitude is None:
        values["altitude"] = None
    else:
        altitude = as_finite_float(raw.altitude)
        if altitude is None:
            issues.append(
                ValidationIssue("altitude", "Altitude must be a number", IssueKind.RANGE)
            )
        values["altitude"] = altitude
    return values, issues


def validate_coordinate(
    raw: RawInput,
    *,
    now: Optional[datetime] = None,
    strict_metadata: Optional[bool] = None,
) -> ValidationResult:
    """Validate a raw report and return the sanitised coordinate if it passes.

    Args:
        raw: Untrusted report (``RawCoordinate``, a dict, or a ``Coordinate``
            being re-checked).
        now: Reference instant for the future-timestamp rule. Defaults to
            the current UTC time.
        strict_metadata: Reject out-of-range optional metadata instead of
            dropping the field with a warning. Defaults to
            ``TELEMETRY_STRICT_METADATA``.

    Returns:
        ``ValidationResult`` listing every violated rule.
    """

    record = _as_raw(raw)
    if record is None:
        issue = ValidationIssue(
            "coordinate",
            f"Coordinate must be an object with position fields, got {type(raw).__name__}",
        )
        _LOG.debug("Rejected unsupported coordinate input: %s", type(raw).__name__)
        return ValidationResult(None, [issue], [])
    reference = canonical_instant(now) if now else datetime.now(timezone.utc)
    strict = TELEMETRY_STRICT_METADATA if strict_metadata is None else strict_metadata
    errors: List[ValidationIssue] = []

    vehicle_id = _normalise_vehicle_id(record.vehicle_id)
    if vehicle_id is None:
        errors.append(
            ValidationIssue("vehicle_id", "Vehicle ID is required and cannot be empty")
        )
    latitude = _check_position("latitude", record.latitude, 90.0, errors)
    longitude = _check_position("longitude", record.longitude, 180.0, errors)
    timestamp = _check_timestamp(record.timestamp, reference, errors)

    optional, range_issues = _check_optional_fields(record)
    warnings: List[ValidationIssue] = []
    if strict:
        errors.extend(range_issues)
    else:
        warnings.extend(range_issues)

    if errors:
        _LOG.debug(
            "Rejected coordinate vehicle=%s issues=%s",
            vehicle_id,
            [issue.field for issue in errors],
        )
        return ValidationResult(None, errors, warnings)

    coordinate = Coordinate(
        vehicle_id=vehicle_id,  # type: ignore[arg-type]
        latitude=round(latitude, COORDINATE_DECIMAL_PLACES),  # type: ignore[arg-type]
        longitude=round(longitude, COORDINATE_DECIMAL_PLACES),  # type: ignore[arg-type]
        timestamp=timestamp,  # type: ignore[arg-type]
        **optional,
    )
    return ValidationResult(coordinate, [], warnings)


def sanitize_coordinate(raw: RawInput, *, now: Optional[datetime] = None) -> Coordinate:
    """Validate and normalise ``raw``; raises if it is structurally invalid.

    Trims the vehicle id, rounds lat/lon to 8 decimals and converts the
    timestamp to UTC milliseconds. Applying it to its own output is a no-op.
    """

    return validate_coordinate(raw, now=now).raise_for_errors()


def count_sequence_issues(sequence: Sequence[Coordinate]) -> tuple[int, int]:
    """Return ``(duplicates, out_of_sequence)`` over consecutive coordinates."""

    duplicates = 0
    out_of_sequence = 0
    for prev, curr in zip(sequence, sequence[1:]):
        if coordinates_equal(prev, curr) and prev.timestamp == curr.timestamp:
            duplicates += 1
        if curr.timestamp < prev.timestamp:
            out_of_sequence += 1
    return duplicates, out_of_sequence


def validate_batch(
    raws: Sequence[RawInput],
    *,
    vehicle_id: Optional[str] = None,
    now: Optional[datetime] = None,
    strict_metadata: Optional[bool] = None,
) -> BatchValidationResult:
    """Validate a batch and report duplicates and out-of-order reports."""

    result = BatchValidationResult()
    if vehicle_id is not None and not str(vehicle_id).strip():
        result.errors.append("Vehicle ID is required for bulk coordinates")
    if not raws:
        result.errors.append("Coordinates array is required and cannot be empty")
        return result
    if len(raws) > MAX_BATCH_SIZE:
        result.errors.append(
            f"Cannot process more than {MAX_BATCH_SIZE} coordinates at once"
        )
        return result

    expected_vehicle = str(vehicle_id).strip() if vehicle_id else None
    for index, raw in enumerate(raws):
        single = validate_coordinate(raw, now=now, strict_metadata=strict_metadata)
        issues = list(single.errors)
        coordinate = single.coordinate
        if (
            coordinate is not None
            and expected_vehicle is not None
            and coordinate.vehicle_id != expected_vehicle
        ):
            issues.append(
                ValidationIssue(
                    "vehicle_id",
                    f"Vehicle ID {coordinate.vehicle_id!r} does not match batch "
                    f"vehicle {expected_vehicle!r}",
                )
            )
        if issues:
            result.rejected[index] = issues
            continue
        result.validated.append(coordinate)  # type: ignore[arg-type]
        result.warnings.extend(
            f"Coordinate at index {index}: {warning}" for warning in single.warnings
        )

    result.duplicates, result.out_of_sequence_count = count_sequence_issues(
        result.validated
    )
    if result.duplicates:
        result.warnings.append(f"Found {result.duplicates} duplicate coordinates")
    if result.out_of_sequence_count:
        result.warnings.append(
            f"Found {result.out_of_sequence_count} coordinates out of chronological sequence"
        )
    if result.rejected:
        _LOG.info(
            "Batch validation rejected %d of %d coordinates",
            len(result.rejected),
            len(raws),
        )
    return result


def _point_valid(point: Optional[GeoPoint]) -> bool:
    if point is None:
        return False
    lat = as_finite_float(point.latitude)
    lon = as_finite_float(point.longitude)
    return lat is not None and lon is not None and -90 <= lat <= 90 and -180 <= lon <= 180


def validate_geofence(geofence: Geofence) -> GeofenceValidationResult:
    """Check geofence constraints for create/update; never clamps values.

    ``errors`` are hard constraint violations; ``geometry_issues`` are
    advisory warnings from the approximate polygon checks.
    """

    result = GeofenceValidationResult()
    name = (geofence.name or "").strip()
    if not name:
        result.errors.append("Geofence name is required and cannot be empty")
    elif len(geofence.name) > GEOFENCE_MAX_NAME_LENGTH:
        result.errors.append(
            f"Geofence name cannot exceed {GEOFENCE_MAX_NAME_LENGTH} characters"
        )

    if not isinstance(geofence.kind, GeofenceKind):
        allowed = ", ".join(k.value for k in GeofenceKind)
        result.errors.append(f"Invalid geofence type. Must be one of: {allowed}")

    if geofence.kind == GeofenceKind.CIRCLE:
        _validate_circle(geofence, result)
    elif geofence.kind == GeofenceKind.POLYGON:
        _validate_polygon(geofence, result)

    if not geofence.assigned_vehicle_ids and not geofence.restricted:
        result.errors.append("At least one vehicle ID is required")
    return result


def _validate_circle(geofence: Geofence, result: GeofenceValidationResult) -> None:
    if geofence.center is None:
        result.errors.append("Center coordinates are required for circle geofence")
    elif not _point_valid(geofence.center):
        result.errors.append("Invalid center coordinates for circle geofence")

    radius = as_finite_float(geofence.radius_meters)
    if radius is None:
        result.errors.append("Radius is required for circle geofence")
    elif not GEOFENCE_MIN_RADIUS_M <= radius <= GEOFENCE_MAX_RADIUS_M:
        result.errors.append(
            f"Circle radius must be between {GEOFENCE_MIN_RADIUS_M:g} and "
            f"{GEOFENCE_MAX_RADIUS_M:g} meters"
        )
    elif radius > GEOFENCE_LARGE_RADIUS_M:
        result.geometry_issues.append("Very large radius may impact performance")


def _validate_polygon(geofence: Geofence, result: GeofenceValidationResult) -> None:
    points = list(geofence.polygon_points or ())
    if len(points) < GEOFENCE_MIN_POLYGON_POINTS:
        result.errors.append(
            f"Polygon geofence requires at least {GEOFENCE_MIN_POLYGON_POINTS} coordinates"
        )
    elif len(points) > GEOFENCE_MAX_POLYGON_POINTS:
        result.errors.append(
            f"Polygon geofence cannot have more than {GEOFENCE_MAX_POLYGON_POINTS} points"
        )
    bad_vertices = [i for i, p in enumerate(points, start=1) if not _point_valid(p)]
    for index in bad_vertices:
        result.errors.append(f"Invalid coordinates at polygon point {index}")
    if result.errors or bad_vertices:
        return
    if polygon_self_intersects(points):
        result.geometry_issues.append("Polygon edges intersect each other")
    if polygon_area_m2(points) < GEOFENCE_MIN_AREA_M2:
        result.geometry_issues.append(
            f"Polygon area is very small (<{GEOFENCE_MIN_AREA_M2:g} sq meters)"
        )


def validate_location_query(query: LocationQuery) -> QueryValidationResult:
    """Check history/analytics query filters and flag expensive requests."""

    result = QueryValidationResult()
    start = parse_iso_datetime(query.start) if query.start is not None else None
    end = parse_iso_datetime(query.end) if query.end is not None else None
    if query.start is not None and query.end is not None:
        if start is None or end is None:
            result.errors.append("Invalid date format in date range")
        else:
            start_utc, end_utc = canonical_instant(start), canonical_instant(end)
            if start_utc >= end_utc:
                result.errors.append("Start date must be before end date")
            elif (end_utc - start_utc).days > QUERY_LARGE_RANGE_DAYS:
                result.performance_warnings.append(
                    f"Large date range (>{QUERY_LARGE_RANGE_DAYS} days) may result "
                    "in slow query performance"
                )

    bounds = query.bounds
    if bounds is not None:
        if bounds.north <= bounds.south:
            result.errors.append(
                "Northern boundary must be greater than southern boundary"
            )
        if bounds.east <= bounds.west:
            result.errors.append("Eastern boundary must be greater than western boundary")
        corners = (GeoPoint(bounds.north, bounds.west), GeoPoint(bounds.south, bounds.east))
        if not all(_point_valid(corner) for corner in corners):
            result.errors.append("Invalid coordinates in boundary definition")
        elif bounds.area_km2() > QUERY_LARGE_AREA_KM2:
            result.performance_warnings.append(
                "Large geographic area may result in many results"
            )

    if query.limit is not None and not 1 <= query.limit <= QUERY_MAX_LIMIT:
        result.errors.append(f"Limit must be between 1 and {QUERY_MAX_LIMIT}")
    if query.limit is None or query.limit > QUERY_LARGE_LIMIT:
        result.performance_warnings.append(
            "Large result set requested - consider using pagination"
        )
    if query.offset is not None and query.offset < 0:
        result.errors.append("Offset cannot be negative")
    return result


__all__ = [
    "BatchValidationResult",
    "GeofenceValidationResult",
    "IssueKind",
    "LocationQuery",
    "QueryValidationResult",
    "ValidationIssue",
    "ValidationResult",
    "count_sequence_issues",
    "sanitize_coordinate",
    "validate_batch",
    "validate_coordinate",
    "validate_geofence",
    "validate_location_query",
]
