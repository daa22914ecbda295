"""Split a vehicle's coordinate sequence into moving and idle segments.

Intervals between consecutive fixes are classified by their implied speed.
Idle runs longer than the stop threshold become stops; shorter pauses are
folded into the neighbouring moving segment so a traffic light does not
fragment a trip.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import List, Optional, Sequence

import numpy as np

from .config import MIN_STOP_MINUTES, STATIONARY_SPEED_THRESHOLD_KMH
from .geometry import distances_km
from .models import Coordinate, MovementKind, MovementSegment, Stop

_LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MovementTotals:
    distance_km: float = 0.0
    moving_minutes: float = 0.0
    idle_minutes: float = 0.0
    average_speed_kmh: float = 0.0
    max_speed_kmh: float = 0.0


@dataclass(slots=True)
class MovementSummary:
    segments: List[MovementSegment] = field(default_factory=list)
    stops: List[Stop] = field(default_factory=list)
    totals: MovementTotals = field(default_factory=MovementTotals)


@dataclass(slots=True)
class _Run:
    kind: MovementKind
    start_index: int
    end_index: int
    minutes: float
    distance_km: float
    idle_minutes: float = 0.0

    def absorb(self, other: "_Run") -> None:
        """Merge an adjacent run into this one, tracking folded idle time."""

        self.start_index = min(self.start_index, other.start_index)
        self.end_index = max(self.end_index, other.end_index)
        self.minutes += other.minutes
        self.distance_km += other.distance_km
        if other.kind == MovementKind.IDLE:
            self.idle_minutes += other.minutes
        else:
            self.idle_minutes += other.idle_minutes

    def freeze(self) -> MovementSegment:
        return MovementSegment(
            kind=self.kind,
            start_index=self.start_index,
            end_index=self.end_index,
            duration_minutes=self.minutes,
            distance_km=self.distance_km,
            idle_minutes=self.idle_minutes,
        )


def _interval_minutes(sequence: Sequence[Coordinate]) -> np.ndarray:
    return np.fromiter(
        (
            (b.timestamp - a.timestamp).total_seconds() / 60.0
            for a, b in zip(sequence, sequence[1:])
        ),
        dtype=float,
        count=len(sequence) - 1,
    )


def _interval_runs(
    kinds: Sequence[MovementKind], minutes: np.ndarray, distances: np.ndarray
) -> List[_Run]:
    """Group consecutive intervals of the same kind into maximal runs."""

    runs: List[_Run] = []
    for i, kind in enumerate(kinds):
        if runs and runs[-1].kind == kind:
            run = runs[-1]
            run.end_index = i + 1
            run.minutes += float(minutes[i])
            run.distance_km += float(distances[i])
            continue
        runs.append(_Run(kind, i, i + 1, float(minutes[i]), float(distances[i])))
    return runs


def segment_movement(
    sequence: Sequence[Coordinate],
    stationary_speed_threshold_kmh: float = STATIONARY_SPEED_THRESHOLD_KMH,
    min_stop_minutes: float = MIN_STOP_MINUTES,
) -> MovementSummary:
    """Segment ``sequence`` (processed in the given order) into movement.

    Args:
        sequence: Validated coordinates for a single vehicle.
        stationary_speed_threshold_kmh: Intervals slower than this are idle.
        min_stop_minutes: Idle runs must last strictly longer than this to
            count as a stop.

    Returns:
        ``MovementSummary`` whose segment distances sum to the total distance
        and whose moving plus idle minutes span first to last timestamp.
    """

    if len(sequence) < 2:
        return MovementSummary()

    distances = distances_km(sequence)
    minutes = _interval_minutes(sequence)
    hours = minutes / 60.0
    speeds = np.divide(
        distances, hours, out=np.zeros_like(distances), where=hours > 0
    )
    idle_mask = speeds < stationary_speed_threshold_kmh
    kinds = [MovementKind.IDLE if idle else MovementKind.MOVING for idle in idle_mask]

    segments: List[_Run] = []
    stops: List[Stop] = []
    pending_idle: Optional[_Run] = None
    for run in _interval_runs(kinds, minutes, distances):
        previous = segments[-1] if segments else None
        if run.kind == MovementKind.MOVING:
            if (
                previous is not None
                and previous.kind == MovementKind.MOVING
                and previous.end_index == run.start_index
            ):
                previous.absorb(run)
                continue
            if pending_idle is not None:
                run.absorb(pending_idle)
                pending_idle = None
            segments.append(run)
            continue

        if run.minutes > min_stop_minutes:
            segments.append(run)
            first = sequence[run.start_index]
            stops.append(
                Stop(
                    location=first,
                    start_time=first.timestamp,
                    end_time=sequence[run.end_index].timestamp,
                    duration_minutes=run.minutes,
                )
            )
        elif previous is not None and previous.kind == MovementKind.MOVING:
            previous.absorb(run)
        else:
            pending_idle = run

    if pending_idle is not None:
        segments.append(pending_idle)

    totals = MovementTotals(
        distance_km=float(distances.sum()),
        moving_minutes=float(minutes[~idle_mask].sum()),
        idle_minutes=float(minutes[idle_mask].sum()),
        average_speed_kmh=float(speeds.mean()),
        max_speed_kmh=float(speeds.max()),
    )
    _LOG.debug(
        "Segmented vehicle=%s points=%d segments=%d stops=%d",
        sequence[0].vehicle_id,
        len(sequence),
        len(segments),
        len(stops),
    )
    return MovementSummary(
        segments=[run.freeze() for run in segments], stops=stops, totals=totals
    )


__all__ = ["MovementSummary", "MovementTotals", "segment_movement"]
