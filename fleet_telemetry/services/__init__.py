"""Service layer package.

Exports high-level services consumed by the CLI and embedding callers.
"""

from .telemetry_service import (
    TelemetryAnalysis,
    TelemetryService,
    TelemetryServiceConfig,
    VehicleAnalysis,
)

__all__ = [
    "TelemetryAnalysis",
    "TelemetryService",
    "TelemetryServiceConfig",
    "VehicleAnalysis",
]
