"""Dataclasses describing telemetry inputs, derived values and reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import GeofenceGeometryError
from .utils import as_bool


class MovementKind(str, Enum):
    MOVING = "moving"
    IDLE = "idle"


class PatternType(str, Enum):
    TELEPORTATION = "teleportation"
    STUCK = "stuck"
    DRIFT = "drift"
    REPLAY = "replay"


class Severity(str, Enum):
    """Finding severity, ordered LOW < MEDIUM < HIGH."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


class QualityLevel(str, Enum):
    """Reading quality, ordered HIGH (best) < MEDIUM < LOW (worst)."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _QUALITY_RANK[self]

    def downgrade(self, candidate: "QualityLevel") -> "QualityLevel":
        """Return the worse of ``self`` and ``candidate``; never upgrades."""

        return candidate if candidate.rank > self.rank else self


_QUALITY_RANK = {QualityLevel.HIGH: 0, QualityLevel.MEDIUM: 1, QualityLevel.LOW: 2}


class GeofenceKind(str, Enum):
    CIRCLE = "circle"
    POLYGON = "polygon"


class GeofenceEventType(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"


# Accepted spellings for raw report keys (camelCase from JSON clients).
_RAW_KEY_ALIASES = {
    "vehicleId": "vehicle_id",
    "vehicle": "vehicle_id",
    "lat": "latitude",
    "lon": "longitude",
    "lng": "longitude",
    "time": "timestamp",
    "batteryLevel": "battery_level",
    "signalStrength": "signal_strength",
}


@dataclass(slots=True)
class RawCoordinate:
    """Untrusted position report exactly as received; nothing is checked."""

    vehicle_id: Any = None
    latitude: Any = None
    longitude: Any = None
    timestamp: Any = None
    accuracy: Any = None
    speed: Any = None
    heading: Any = None
    altitude: Any = None
    battery_level: Any = None
    signal_strength: Any = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RawCoordinate":
        """Build a raw report from a dict using camelCase or snake_case keys."""

        known = set(cls.__slots__)
        values: Dict[str, Any] = {}
        for key, value in data.items():
            name = _RAW_KEY_ALIASES.get(key, key)
            if name in known:
                values[name] = value
        return cls(**values)


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """Plain latitude/longitude pair (geofence centres and vertices)."""

    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class Coordinate:
    """Validated, immutable position report for one vehicle.

    Only produced by :func:`fleet_telemetry.validation.sanitize_coordinate`
    after validation, so every instance satisfies the range constraints.
    ``timestamp`` is an aware UTC datetime with millisecond precision.
    """

    vehicle_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    accuracy: Optional[float] = None  # metres
    speed: Optional[float] = None  # km/h
    heading: Optional[float] = None  # degrees, 0=N
    altitude: Optional[float] = None  # metres
    battery_level: Optional[float] = None  # percent
    signal_strength: Optional[float] = None  # percent

    def to_raw(self) -> RawCoordinate:
        return RawCoordinate(
            vehicle_id=self.vehicle_id,
            latitude=self.latitude,
            longitude=self.longitude,
            timestamp=self.timestamp,
            accuracy=self.accuracy,
            speed=self.speed,
            heading=self.heading,
            altitude=self.altitude,
            battery_level=self.battery_level,
            signal_strength=self.signal_strength,
        )


@dataclass(frozen=True, slots=True)
class MovementSegment:
    """Contiguous run of intervals sharing a movement classification.

    ``start_index``/``end_index`` are positions in the analysed sequence.
    ``idle_minutes`` holds short pauses folded into a moving segment.
    """

    kind: MovementKind
    start_index: int
    end_index: int
    duration_minutes: float
    distance_km: float
    idle_minutes: float = 0.0


@dataclass(frozen=True, slots=True)
class Stop:
    location: Coordinate
    start_time: datetime
    end_time: datetime
    duration_minutes: float


@dataclass(frozen=True, slots=True)
class PatternFinding:
    """Advisory data-quality finding; never alters the analysed data."""

    type: PatternType
    severity: Severity
    description: str
    involved_coordinates: Tuple[Coordinate, ...]


@dataclass(frozen=True)
class Geofence:
    """Named circle or polygon boundary, read-only to the engine."""

    id: str
    name: str
    kind: GeofenceKind
    center: Optional[GeoPoint] = None
    radius_meters: Optional[float] = None
    polygon_points: Tuple[GeoPoint, ...] = ()
    assigned_vehicle_ids: frozenset[str] = frozenset()
    active: bool = True
    # Restricted zones count any entry as a violation, assigned or not.
    restricted: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Geofence":
        """Build a geofence from a JSON-style dict (camelCase accepted)."""

        center = data.get("center")
        points = data.get("polygonPoints", data.get("polygon_points")) or data.get(
            "coordinates"
        )
        radius = data.get("radiusMeters", data.get("radius_meters", data.get("radius")))
        vehicles = data.get(
            "assignedVehicleIds",
            data.get("assigned_vehicle_ids", data.get("vehicleIds", [])),
        )
        active = data.get("active", data.get("isActive", True))
        raw_kind = str(data.get("kind", data.get("type", ""))).strip().lower()
        try:
            kind = GeofenceKind(raw_kind)
        except ValueError as exc:
            allowed = ", ".join(k.value for k in GeofenceKind)
            raise GeofenceGeometryError(
                [f"Invalid geofence type {raw_kind!r}. Must be one of: {allowed}"]
            ) from exc
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            kind=kind,
            center=_geo_point(center) if center else None,
            radius_meters=float(radius) if radius is not None else None,
            polygon_points=tuple(_geo_point(p) for p in points or ()),
            assigned_vehicle_ids=frozenset(str(v) for v in vehicles or ()),
            active=as_bool(active, True),
            restricted=as_bool(data.get("restricted"), False),
            metadata=dict(data.get("metadata") or {}),
        )


def _geo_point(value: Any) -> GeoPoint:
    if isinstance(value, GeoPoint):
        return value
    if isinstance(value, Mapping):
        lat = value.get("latitude", value.get("lat"))
        lon = value.get("longitude", value.get("lon", value.get("lng")))
        return GeoPoint(float(lat), float(lon))
    lat, lon = value
    return GeoPoint(float(lat), float(lon))


@dataclass(frozen=True, slots=True)
class GeofenceEvent:
    geofence_id: str
    vehicle_id: str
    type: GeofenceEventType
    coordinate: Coordinate
    violation: bool = False


@dataclass(slots=True)
class VehicleGeofenceActivity:
    entries: int = 0
    exits: int = 0
    violations: int = 0


@dataclass(slots=True)
class ComplianceReport:
    """Entry/exit/violation counts for one geofence over a time window."""

    geofence_id: str
    window_start: datetime
    window_end: datetime
    total_entries: int = 0
    total_exits: int = 0
    violations_count: int = 0
    per_vehicle_activity: Dict[str, VehicleGeofenceActivity] = field(
        default_factory=dict
    )
    events: List[GeofenceEvent] = field(default_factory=list)


@dataclass(slots=True)
class QualityAssessment:
    """Transient quality verdict for one reading; not stored with it."""

    quality: QualityLevel = QualityLevel.HIGH
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    calculated_speed_kmh: Optional[float] = None


__all__ = [
    "ComplianceReport",
    "Coordinate",
    "GeoPoint",
    "Geofence",
    "GeofenceEvent",
    "GeofenceEventType",
    "GeofenceKind",
    "MovementKind",
    "MovementSegment",
    "PatternFinding",
    "PatternType",
    "QualityAssessment",
    "QualityLevel",
    "RawCoordinate",
    "Severity",
    "Stop",
    "VehicleGeofenceActivity",
]
