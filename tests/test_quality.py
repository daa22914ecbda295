from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from fleet_telemetry.models import QualityLevel
from fleet_telemetry.quality import StreamingQualityValidator, score_quality
from fleet_telemetry.state import VehicleStateStore

from conftest import BASE_LAT, KM_LAT_DEG, T0, make_coord, make_raw


def test_clean_reading_is_high_quality():
    assessment = score_quality(make_coord(accuracy=5.0, battery_level=80, signal_strength=90))
    assert assessment.quality == QualityLevel.HIGH
    assert assessment.warnings == [] and assessment.errors == []


@pytest.mark.parametrize(
    "accuracy,expected,warning",
    [
        (20.0, QualityLevel.HIGH, None),
        (25.0, QualityLevel.MEDIUM, "GPS accuracy is moderate (>20m)"),
        (60.0, QualityLevel.LOW, "GPS accuracy is low (>50m)"),
    ],
)
def test_accuracy_bands(accuracy, expected, warning):
    assessment = score_quality(make_coord(accuracy=accuracy))
    assert assessment.quality == expected
    assert assessment.warnings == ([warning] if warning else [])


def test_unrealistic_implied_speed_forces_low():
    previous = make_coord(t=0)
    current = make_coord(lat=4.60 + 10 * KM_LAT_DEG, t=60)  # 600 km/h
    assessment = score_quality(current, previous)
    assert assessment.quality == QualityLevel.LOW
    assert assessment.calculated_speed_kmh == pytest.approx(600.0, rel=1e-6)
    assert assessment.errors and "seems unrealistic" in assessment.errors[0]


def test_reported_speed_mismatch_downgrades_to_medium():
    previous = make_coord(t=0)
    current = make_coord(lat=4.60 + KM_LAT_DEG, t=60, speed=0.0)  # implied 60 km/h
    assessment = score_quality(current, previous)
    assert assessment.quality == QualityLevel.MEDIUM
    assert assessment.warnings[0].startswith("Reported speed differs from calculated speed by")


def test_battery_warning_only_and_weak_signal_medium():
    battery = score_quality(make_coord(battery_level=10))
    assert battery.quality == QualityLevel.HIGH
    assert battery.warnings == ["Device battery level is low (<20%)"]

    signal = score_quality(make_coord(signal_strength=10))
    assert signal.quality == QualityLevel.MEDIUM
    assert signal.warnings == ["GPS signal strength is weak (<30%)"]


def test_quality_only_ratchets_down():
    # Low accuracy first, weak signal afterwards must not lift it back to MEDIUM.
    assessment = score_quality(make_coord(accuracy=80.0, signal_strength=5, battery_level=5))
    assert assessment.quality == QualityLevel.LOW
    assert len(assessment.warnings) == 3


def test_streaming_validator_scores_against_previous(now):
    validator = StreamingQualityValidator(store=VehicleStateStore(), now=lambda: now)
    first = validator.validate(make_raw(timestamp="2025-01-06T08:00:00Z"))
    assert first.is_valid and first.assessment.calculated_speed_kmh is None

    jump = validator.validate(
        make_raw(latitude=4.60 + 10 * KM_LAT_DEG, timestamp="2025-01-06T08:01:00Z")
    )
    assert jump.quality == QualityLevel.LOW


def test_streaming_rejects_invalid_without_touching_state(now):
    store = VehicleStateStore()
    validator = StreamingQualityValidator(store=store, now=lambda: now)
    result = validator.validate(make_raw(latitude=91))
    assert not result.is_valid
    assert result.assessment is None
    assert "veh-1" not in store


def test_streaming_state_isolated_per_vehicle_and_store(now):
    shared = VehicleStateStore()
    a = StreamingQualityValidator(store=shared, now=lambda: now)
    a.validate(make_raw(vehicleId="veh-1"))
    a.validate(make_raw(vehicleId="veh-2", latitude=10.0))
    assert shared.last_coordinate("veh-1").latitude == 4.60
    assert shared.last_coordinate("veh-2").latitude == 10.0

    isolated = StreamingQualityValidator(store=VehicleStateStore(), now=lambda: now)
    result = isolated.validate(
        make_raw(vehicleId="veh-1", latitude=10.0, timestamp="2025-01-06T08:01:00Z")
    )
    assert result.assessment.calculated_speed_kmh is None

    a.reset("veh-1")
    assert shared.last_coordinate("veh-1") is None
    assert shared.last_coordinate("veh-2") is not None


def test_state_store_entries_expire():
    clock = [0.0]
    store = VehicleStateStore(ttl_seconds=10, timer=lambda: clock[0])
    store.record(make_coord(t=T0 + timedelta(minutes=1)))
    assert len(store) == 1
    clock[0] = 11.0
    assert store.last_coordinate("veh-1") is None
    assert len(store) == 0


def test_late_report_does_not_rewind_baseline(now):
    store = VehicleStateStore()
    validator = StreamingQualityValidator(store=store, now=lambda: now)
    validator.validate(make_raw(timestamp="2025-01-06T08:02:00Z"))
    late = validator.validate(make_raw(timestamp="2025-01-06T08:01:00Z"))
    assert late.is_valid and late.assessment.calculated_speed_kmh is None
    assert store.last_coordinate("veh-1").timestamp == T0 + timedelta(minutes=2)


def _step_raw(vehicle, step):
    return make_raw(
        vehicleId=vehicle,
        latitude=BASE_LAT + step * KM_LAT_DEG,
        timestamp=(T0 + timedelta(minutes=step)).isoformat(),
    )


def test_concurrent_streams_keep_each_vehicle_chain(now):
    store = VehicleStateStore(shards=2)
    validator = StreamingQualityValidator(store=store, now=lambda: now)
    vehicles = [f"veh-{n}" for n in range(8)]

    def stream(owned):
        rows = []
        for step in range(30):
            for vehicle in owned:
                rows.append((step, validator.validate(_step_raw(vehicle, step))))
        return rows

    with ThreadPoolExecutor(max_workers=4) as executor:
        futures = [executor.submit(stream, vehicles[i::4]) for i in range(4)]
        rows = [row for future in futures for row in future.result()]

    assert len(rows) == 8 * 30
    for step, result in rows:
        speed = result.assessment.calculated_speed_kmh
        if step == 0:
            assert speed is None
        else:
            # 1 km per minute against this vehicle's own previous report.
            assert speed == pytest.approx(60.0, rel=1e-3)
    for vehicle in vehicles:
        assert store.last_coordinate(vehicle).timestamp == T0 + timedelta(minutes=29)


def test_concurrent_reports_for_one_vehicle_keep_latest(now):
    store = VehicleStateStore()
    validator = StreamingQualityValidator(store=store, now=lambda: now)
    raws = [
        make_raw(timestamp=(T0 + timedelta(seconds=10 * i)).isoformat())
        for i in range(200)
    ]

    def send(chunk):
        return [validator.validate(raw).is_valid for raw in chunk]

    with ThreadPoolExecutor(max_workers=4) as executor:
        outcomes = list(executor.map(send, [raws[i::4] for i in range(4)]))
    assert all(all(chunk) for chunk in outcomes)
    assert store.last_coordinate("veh-1").timestamp == T0 + timedelta(seconds=1990)


def test_locked_read_modify_write_is_atomic():
    store = VehicleStateStore(shards=1)

    def add_tags(prefix):
        for n in range(200):
            with store.locked("veh-1") as state:
                state.inside_geofences = state.inside_geofences | {f"{prefix}-{n}"}

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(add_tags, range(8)))
    with store.locked("veh-1") as state:
        assert len(state.inside_geofences) == 8 * 200
