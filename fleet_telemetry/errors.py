"""Central error types used across the engine."""

from __future__ import annotations

from typing import Sequence


class TelemetryError(RuntimeError):
    """Base error for telemetry engine failures."""


class CoordinateValidationError(TelemetryError):
    """Raised when a caller asks for a structurally invalid coordinate."""

    def __init__(self, issues: Sequence[object]) -> None:
        self.issues = list(issues)
        detail = "; ".join(str(issue) for issue in self.issues)
        super().__init__(f"Invalid coordinate: {detail}")


class BatchValidationError(TelemetryError):
    """Raised when a coordinate batch is rejected as a whole."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class GeofenceGeometryError(TelemetryError):
    """Raised when geofence geometry violates its constraints."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class InputFormatError(TelemetryError):
    """Raised when an input file cannot be read as telemetry reports."""


__all__ = [
    "TelemetryError",
    "CoordinateValidationError",
    "BatchValidationError",
    "GeofenceGeometryError",
    "InputFormatError",
]
