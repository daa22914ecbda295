"""Advisory data-quality pattern detection over a coordinate sequence.

Findings describe the data; they never drop or alter coordinates. Whether a
HIGH finding should block ingestion is left to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .config import (
    DRIFT_MAX_DISTANCE_KM,
    DRIFT_MIN_COUNT,
    DRIFT_MIN_DISTANCE_KM,
    DRIFT_WINDOW,
    STUCK_MIN_RUN,
    TELEPORT_SPEED_KMH,
)
from .geometry import coordinates_equal, distances_km
from .models import Coordinate, PatternFinding, PatternType, Severity

_LOG = logging.getLogger(__name__)

RECOMMEND_NOT_ENOUGH_DATA = "Not enough data for pattern analysis"
RECOMMEND_HIGH = "High severity issues detected - review GPS hardware and data collection"
RECOMMEND_MINOR = "Minor data quality issues detected - monitor GPS device status"
RECOMMEND_NORMAL = "Data appears normal"


@dataclass(slots=True)
class AnomalyReport:
    findings: List[PatternFinding] = field(default_factory=list)
    recommendation: str = RECOMMEND_NORMAL

    @property
    def highest_severity(self) -> Severity | None:
        if not self.findings:
            return None
        return max((f.severity for f in self.findings), key=lambda s: s.rank)


def _teleportation(
    sequence: Sequence[Coordinate], distances: np.ndarray
) -> List[PatternFinding]:
    findings: List[PatternFinding] = []
    for i, (prev, curr) in enumerate(zip(sequence, sequence[1:])):
        seconds = (curr.timestamp - prev.timestamp).total_seconds()
        if seconds <= 0:
            continue
        speed = float(distances[i]) * 3600.0 / seconds
        if speed > TELEPORT_SPEED_KMH:
            findings.append(
                PatternFinding(
                    type=PatternType.TELEPORTATION,
                    severity=Severity.HIGH,
                    description=f"Impossible speed detected: {round(speed)} km/h",
                    involved_coordinates=(prev, curr),
                )
            )
    return findings


def _stuck(sequence: Sequence[Coordinate]) -> List[PatternFinding]:
    findings: List[PatternFinding] = []

    def flush(start: int, end: int) -> None:
        length = end - start
        if length > STUCK_MIN_RUN:
            findings.append(
                PatternFinding(
                    type=PatternType.STUCK,
                    severity=Severity.MEDIUM,
                    description=(
                        "Vehicle appears stuck at same location for "
                        f"{length} data points"
                    ),
                    involved_coordinates=tuple(sequence[start:end]),
                )
            )

    run_start = 0
    for i in range(1, len(sequence)):
        if not coordinates_equal(sequence[i - 1], sequence[i]):
            flush(run_start, i)
            run_start = i
    flush(run_start, len(sequence))
    return findings


def _drift(
    sequence: Sequence[Coordinate], distances: np.ndarray
) -> List[PatternFinding]:
    # Drift shows up while a receiver settles on its first fixes, so only the
    # leading window is scanned; later slow creep is left to the segmenter.
    window = distances[: max(0, min(len(sequence), DRIFT_WINDOW) - 1)]
    jitter = np.count_nonzero(
        (window > DRIFT_MIN_DISTANCE_KM) & (window < DRIFT_MAX_DISTANCE_KM)
    )
    if jitter <= DRIFT_MIN_COUNT:
        return []
    return [
        PatternFinding(
            type=PatternType.DRIFT,
            severity=Severity.LOW,
            description=(
                "Possible GPS drift detected - small random movements while stationary"
            ),
            involved_coordinates=tuple(sequence[:DRIFT_WINDOW]),
        )
    ]


def _replay(sequence: Sequence[Coordinate]) -> List[PatternFinding]:
    seen: Dict[Tuple[object, float, float], int] = {}
    involved: set[int] = set()
    repeats = 0
    for i, coord in enumerate(sequence):
        key = (coord.timestamp, coord.latitude, coord.longitude)
        first = seen.setdefault(key, i)
        if first != i:
            repeats += 1
            involved.update((first, i))
    if not repeats:
        return []
    return [
        PatternFinding(
            type=PatternType.REPLAY,
            severity=Severity.MEDIUM,
            description=(
                f"Replayed reports detected: {repeats} coordinates repeat an "
                "earlier timestamp and position"
            ),
            involved_coordinates=tuple(sequence[i] for i in sorted(involved)),
        )
    ]


def recommendation_for(findings: Sequence[PatternFinding]) -> str:
    if not findings:
        return RECOMMEND_NORMAL
    if any(f.severity == Severity.HIGH for f in findings):
        return RECOMMEND_HIGH
    return RECOMMEND_MINOR


def detect_anomalies(sequence: Sequence[Coordinate]) -> AnomalyReport:
    """Flag teleportation, stuck sensors, leading-window drift and replays.

    The sequence is read in the given order and never modified.
    """

    if len(sequence) < 2:
        return AnomalyReport([], RECOMMEND_NOT_ENOUGH_DATA)

    distances = distances_km(sequence)
    findings = (
        _teleportation(sequence, distances)
        + _stuck(sequence)
        + _drift(sequence, distances)
        + _replay(sequence)
    )
    if findings:
        _LOG.info(
            "Detected %d anomaly finding(s) for vehicle=%s: %s",
            len(findings),
            sequence[0].vehicle_id,
            sorted({f.type.value for f in findings}),
        )
    return AnomalyReport(findings, recommendation_for(findings))


__all__ = [
    "AnomalyReport",
    "RECOMMEND_HIGH",
    "RECOMMEND_MINOR",
    "RECOMMEND_NORMAL",
    "RECOMMEND_NOT_ENOUGH_DATA",
    "detect_anomalies",
    "recommendation_for",
]
