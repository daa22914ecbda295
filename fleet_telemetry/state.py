"""Caller-owned per-vehicle state for streaming validation and geofencing.

Entries live in TTL-bounded caches split across shards, each with its own
lock, so concurrent updates for different vehicles rarely contend while a
single vehicle's read-modify-write stays atomic.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
import threading
import time
from typing import Callable, Iterator, List, Optional, Set
import zlib

from cachetools import TTLCache

from .config import (
    VEHICLE_STATE_MAX_VEHICLES,
    VEHICLE_STATE_SHARDS,
    VEHICLE_STATE_TTL_SECONDS,
)
from .models import Coordinate


@dataclass(slots=True)
class VehicleState:
    last_coordinate: Optional[Coordinate] = None
    inside_geofences: Set[str] = field(default_factory=set)


@dataclass(slots=True)
class _Shard:
    lock: threading.RLock
    cache: TTLCache


class VehicleStateStore:
    """Thread-safe map of vehicle id to :class:`VehicleState`.

    Entries expire ``ttl_seconds`` after their last update; the total size
    is bounded by ``max_vehicles`` (spread evenly over the shards).
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = VEHICLE_STATE_TTL_SECONDS,
        max_vehicles: int = VEHICLE_STATE_MAX_VEHICLES,
        shards: int = VEHICLE_STATE_SHARDS,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        shard_count = max(1, int(shards))
        per_shard = max(1, int(max_vehicles) // shard_count)
        self._shards: List[_Shard] = [
            _Shard(
                threading.RLock(),
                TTLCache(maxsize=per_shard, ttl=ttl_seconds, timer=timer),
            )
            for _ in range(shard_count)
        ]

    def _shard(self, vehicle_id: str) -> _Shard:
        index = zlib.crc32(vehicle_id.encode("utf-8")) % len(self._shards)
        return self._shards[index]

    @contextmanager
    def locked(self, vehicle_id: str) -> Iterator[VehicleState]:
        """Hold the vehicle's shard lock and yield its (possibly new) state.

        Changes made to the yielded state are stored on exit and refresh the
        entry's TTL.
        """

        shard = self._shard(vehicle_id)
        with shard.lock:
            state = shard.cache.get(vehicle_id)
            if state is None:
                state = VehicleState()
            yield state
            shard.cache[vehicle_id] = state

    def last_coordinate(self, vehicle_id: str) -> Optional[Coordinate]:
        shard = self._shard(vehicle_id)
        with shard.lock:
            state = shard.cache.get(vehicle_id)
            return state.last_coordinate if state else None

    def record(self, coordinate: Coordinate) -> None:
        with self.locked(coordinate.vehicle_id) as state:
            state.last_coordinate = coordinate

    def reset(self, vehicle_id: str) -> None:
        shard = self._shard(vehicle_id)
        with shard.lock:
            shard.cache.pop(vehicle_id, None)

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.cache.clear()

    def __contains__(self, vehicle_id: object) -> bool:
        if not isinstance(vehicle_id, str):
            return False
        shard = self._shard(vehicle_id)
        with shard.lock:
            return vehicle_id in shard.cache

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                shard.cache.expire()
                total += len(shard.cache)
        return total


__all__ = ["VehicleState", "VehicleStateStore"]
