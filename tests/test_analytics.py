from datetime import timedelta

import pytest

from fleet_telemetry.analytics import (
    compliance_summary,
    fleet_rankings,
    fuel_efficiency,
    hourly_activity,
    popular_locations,
    route_efficiency,
    route_optimizations,
    vehicle_performance_score,
)
from fleet_telemetry.models import ComplianceReport, VehicleGeofenceActivity
from fleet_telemetry.movement import MovementTotals, segment_movement

from conftest import KM_LAT_DEG, T0, make_coord, make_track


def test_hourly_activity_has_all_hours_and_counts_vehicles():
    a = make_track([(60, 1.0), (60, 1.0)], vehicle="a")
    b = make_track([(60, 1.0)], vehicle="b")
    late = make_track([(60, 1.0)], vehicle="a", start=T0 + timedelta(hours=2))
    frame = hourly_activity(a + b + late)
    assert list(frame["hour"]) == list(range(24))
    row = frame.loc[frame["hour"] == 8].iloc[0]
    assert row["vehicle_count"] == 2
    assert row["interval_count"] == 3
    assert row["total_distance_km"] == pytest.approx(3.0, rel=1e-6)
    assert row["average_speed_kmh"] == pytest.approx(60.0, rel=1e-6)
    # Vehicle "a" jumps from 08:02 to 10:00; that interval lands in hour 10.
    assert frame.loc[frame["hour"] == 10, "interval_count"].iloc[0] == 2
    assert frame.loc[frame["hour"] == 3, "interval_count"].iloc[0] == 0


def test_hourly_activity_empty_input():
    frame = hourly_activity([])
    assert len(frame) == 24
    assert frame["interval_count"].sum() == 0


def test_popular_locations_clusters_and_ranks():
    depot = [make_coord(t=60 * i) for i in range(4)]
    shop = [make_coord(lat=4.60 + 5 * KM_LAT_DEG, t=600 + 60 * i) for i in range(2)]
    nearby = [make_coord(lat=4.60 + 0.05 * KM_LAT_DEG, t=900)]
    locations = popular_locations(depot + shop + nearby)
    assert [loc.visit_count for loc in locations] == [5, 2]
    assert locations[0].location == depot[0]
    assert locations[0].total_duration_minutes == pytest.approx(3.0)
    assert locations[1].average_stay_minutes == pytest.approx(0.5)
    assert len(popular_locations(depot + shop, top=1)) == 1


def test_route_efficiency_idle_heavy_trip():
    coords = make_track([(60, 1.0), (600, 0.0), (60, 1.0)])
    result = route_efficiency(segment_movement(coords))
    types = [issue.type for issue in result.issues]
    # Average interval speed is 40 km/h, so only the idle issue fires.
    assert types == ["excessive_idle"]
    assert result.issues[0].locations == [coords[1]]
    # 2 km in 12 minutes against an ideal 50 km/h.
    assert result.efficiency == pytest.approx((2.0 / 50.0) / (12 / 60) * 100, rel=1e-6)
    assert result.optimization_potential == pytest.approx(100 - result.efficiency)


def test_route_efficiency_fast_trip_is_capped():
    coords = make_track([(60, 2.0), (60, 2.0)])
    result = route_efficiency(segment_movement(coords))
    assert result.issues == []
    assert result.efficiency == 100.0
    assert result.optimization_potential == 0.0


def test_route_optimizations_flags_congestion_and_speeding():
    coords = make_track([(600, 1.0), (60, 2.0), (60, 1.0)])
    result = route_optimizations(coords)
    reasons = [segment.reason for segment in result.inefficient_segments]
    assert reasons == [
        "Traffic congestion or inefficient route",
        "Excessive speed increases fuel consumption",
    ]
    assert result.total_optimization_potential == 25.0


def test_compliance_summary():
    reports = [
        ComplianceReport(
            "g1", T0, T0, total_entries=3, total_exits=3, violations_count=2,
            per_vehicle_activity={
                "v1": VehicleGeofenceActivity(2, 2, 2),
                "v2": VehicleGeofenceActivity(1, 1, 0),
            },
        ),
        ComplianceReport(
            "g2", T0, T0, total_entries=1, total_exits=1, violations_count=1,
            per_vehicle_activity={"v2": VehicleGeofenceActivity(1, 1, 1)},
        ),
    ]
    summary = compliance_summary(reports, {"g1": "Depot"})
    assert summary.overall_compliance == pytest.approx((8 - 3) / 8 * 100)
    assert summary.violations_by_geofence == {"Depot": 2, "g2": 1}
    assert summary.top_violators == [("v1", 2), ("v2", 1)]
    assert compliance_summary([]).overall_compliance == 100.0


def test_fuel_efficiency_by_vehicle_type():
    assert fuel_efficiency(100.0) == pytest.approx(12.5)
    assert fuel_efficiency(100.0, "truck") == pytest.approx(4.0)
    assert fuel_efficiency(0.0, "van") == 0.0
    with pytest.raises(ValueError):
        fuel_efficiency(10.0, "bicycle")


def test_performance_score_for_steady_car():
    totals = MovementTotals(
        distance_km=20.0, moving_minutes=24.0, idle_minutes=6.0,
        average_speed_kmh=50.0, max_speed_kmh=60.0,
    )
    score = vehicle_performance_score(totals)
    # Ideal speed, 20% idle: efficiency (100 + 60) / 2.
    assert score.efficiency == pytest.approx(80.0)
    assert score.safety == 90.0
    assert score.fuel_usage == 100.0
    assert score.overall_score == pytest.approx((80 + 90 + 85 + 100) / 4)
    assert score.recommendations == []


def test_performance_score_for_fast_truck_recommends_everything():
    totals = MovementTotals(
        distance_km=50.0, moving_minutes=30.0, average_speed_kmh=100.0,
        max_speed_kmh=120.0,
    )
    score = vehicle_performance_score(totals, "truck")
    assert score.efficiency == pytest.approx(50.0)
    assert score.safety == pytest.approx(70.0)
    assert score.fuel_efficiency_kmpl == pytest.approx(4.0)
    assert score.overall_score == pytest.approx((50 + 70 + 85 + 40) / 4)
    assert len(score.recommendations) == 3


def test_performance_score_with_no_movement():
    score = vehicle_performance_score(MovementTotals())
    # Zero distance means no fuel estimate and the eco-driving hint.
    assert score.fuel_usage == 0.0
    assert score.recommendations[-1].startswith("Implement eco-driving")


def test_fleet_rankings_order_best_first():
    near = MovementTotals(distance_km=10.0, moving_minutes=12.0, average_speed_kmh=50.0)
    far = MovementTotals(distance_km=90.0, moving_minutes=60.0, average_speed_kmh=90.0)
    rankings = fleet_rankings(
        {
            "far": (far, vehicle_performance_score(far)),
            "near": (near, vehicle_performance_score(near)),
        }
    )
    assert [vid for vid, _ in rankings.efficiency] == ["near", "far"]
    assert rankings.distance == [("far", 90.0), ("near", 10.0)]
    # Same vehicle type: equal km/L, so the id breaks the tie.
    assert [vid for vid, _ in rankings.fuel_efficiency] == ["far", "near"]
