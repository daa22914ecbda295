"""Per-reading quality scoring and the streaming validator built on it."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Callable, Optional

from .config import (
    QUALITY_LOW_ACCURACY_M,
    QUALITY_LOW_BATTERY_PERCENT,
    QUALITY_MAX_IMPLIED_SPEED_KMH,
    QUALITY_MEDIUM_ACCURACY_M,
    QUALITY_SPEED_MISMATCH_KMH,
    QUALITY_WEAK_SIGNAL_PERCENT,
)
from .geometry import elapsed_hours, speed_kmh
from .models import Coordinate, QualityAssessment, QualityLevel
from .state import VehicleStateStore
from .validation import RawInput, ValidationResult, validate_coordinate

_LOG = logging.getLogger(__name__)


def score_quality(
    coordinate: Coordinate, previous: Optional[Coordinate] = None
) -> QualityAssessment:
    """Grade one reading; every check runs and the worst level wins."""

    assessment = QualityAssessment()

    def ratchet(level: QualityLevel) -> None:
        assessment.quality = assessment.quality.downgrade(level)

    accuracy = coordinate.accuracy
    if accuracy is not None:
        if accuracy > QUALITY_LOW_ACCURACY_M:
            assessment.warnings.append(
                f"GPS accuracy is low (>{QUALITY_LOW_ACCURACY_M:g}m)"
            )
            ratchet(QualityLevel.LOW)
        elif accuracy > QUALITY_MEDIUM_ACCURACY_M:
            assessment.warnings.append(
                f"GPS accuracy is moderate (>{QUALITY_MEDIUM_ACCURACY_M:g}m)"
            )
            ratchet(QualityLevel.MEDIUM)

    if previous is not None and elapsed_hours(previous, coordinate) > 0:
        implied = speed_kmh(previous, coordinate)
        assessment.calculated_speed_kmh = implied
        if implied > QUALITY_MAX_IMPLIED_SPEED_KMH:
            assessment.errors.append(
                f"Calculated speed ({implied:.1f} km/h) seems unrealistic"
            )
            ratchet(QualityLevel.LOW)
        if coordinate.speed is not None:
            difference = abs(coordinate.speed - implied)
            if difference > QUALITY_SPEED_MISMATCH_KMH:
                assessment.warnings.append(
                    "Reported speed differs from calculated speed by "
                    f"{difference:.1f} km/h"
                )
                ratchet(QualityLevel.MEDIUM)

    battery = coordinate.battery_level
    if battery is not None and battery < QUALITY_LOW_BATTERY_PERCENT:
        assessment.warnings.append(
            f"Device battery level is low (<{QUALITY_LOW_BATTERY_PERCENT:g}%)"
        )

    signal = coordinate.signal_strength
    if signal is not None and signal < QUALITY_WEAK_SIGNAL_PERCENT:
        assessment.warnings.append(
            f"GPS signal strength is weak (<{QUALITY_WEAK_SIGNAL_PERCENT:g}%)"
        )
        ratchet(QualityLevel.MEDIUM)

    return assessment


@dataclass(slots=True)
class RealTimeValidation:
    """Validation outcome plus quality verdict for one streamed report."""

    validation: ValidationResult
    assessment: Optional[QualityAssessment] = None

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    @property
    def quality(self) -> Optional[QualityLevel]:
        return self.assessment.quality if self.assessment else None


@dataclass(slots=True)
class StreamingQualityValidator:
    """Validate and score reports as they arrive, one vehicle at a time.

    The latest accepted coordinate per vehicle lives in ``store``, which
    the caller owns; pass the same store to share history between
    validators, or a fresh one to isolate them. A report older than the
    stored one is scored against it but does not replace it.
    """

    store: VehicleStateStore = field(default_factory=VehicleStateStore)
    now: Optional[Callable[[], datetime]] = None
    strict_metadata: Optional[bool] = None

    def validate(self, raw: RawInput) -> RealTimeValidation:
        validation = validate_coordinate(
            raw,
            now=self.now() if self.now else None,
            strict_metadata=self.strict_metadata,
        )
        coordinate = validation.coordinate
        if not validation.is_valid or coordinate is None:
            return RealTimeValidation(validation)

        with self.store.locked(coordinate.vehicle_id) as state:
            previous = state.last_coordinate
            assessment = score_quality(coordinate, previous)
            if previous is None or coordinate.timestamp >= previous.timestamp:
                state.last_coordinate = coordinate
        if assessment.errors:
            _LOG.info(
                "Quality errors for vehicle=%s: %s",
                coordinate.vehicle_id,
                "; ".join(assessment.errors),
            )
        return RealTimeValidation(validation, assessment)

    def reset(self, vehicle_id: str) -> None:
        self.store.reset(vehicle_id)


__all__ = ["RealTimeValidation", "StreamingQualityValidator", "score_quality"]
