import os
import tempfile
from datetime import timedelta

import pandas as pd

from fleet_telemetry.report_writer import (
    COMPLIANCE_SHEET,
    FINDINGS_SHEET,
    HOURLY_SHEET,
    REJECTED_SHEET,
    STOPS_SHEET,
    VEHICLE_SUMMARY_SHEET,
    write_analysis,
)
from fleet_telemetry.services import TelemetryService, TelemetryServiceConfig

from conftest import BASE_LAT, BASE_LON, KM_LAT_DEG, T0


def _analysis():
    raws = []
    for minute, km in [(0, 0.0), (1, 1.0), (8, 1.0), (9, 2.0)]:
        raws.append(
            {
                "vehicleId": "truck-7",
                "latitude": BASE_LAT + km * KM_LAT_DEG,
                "longitude": BASE_LON,
                "timestamp": (T0 + timedelta(minutes=minute)).isoformat(),
            }
        )
    raws.append({"vehicleId": "", "latitude": 0, "longitude": 0, "timestamp": "bad"})
    service = TelemetryService(TelemetryServiceConfig(now=lambda: T0 + timedelta(days=1)))
    return service.analyze_batch(raws)


def test_write_analysis_creates_all_sheets():
    analysis = _analysis()
    with tempfile.TemporaryDirectory() as td:
        out_path = os.path.join(td, "telemetry.xlsx")
        sheets = write_analysis(out_path, analysis)
        assert os.path.exists(out_path)
        with pd.ExcelFile(out_path) as xf:
            assert set(xf.sheet_names) == set(sheets) == {
                VEHICLE_SUMMARY_SHEET,
                STOPS_SHEET,
                FINDINGS_SHEET,
                REJECTED_SHEET,
                COMPLIANCE_SHEET,
                HOURLY_SHEET,
            }
            summary = pd.read_excel(xf, VEHICLE_SUMMARY_SHEET)
            stops = pd.read_excel(xf, STOPS_SHEET)
            rejected = pd.read_excel(xf, REJECTED_SHEET)
            compliance = pd.read_excel(xf, COMPLIANCE_SHEET)
    assert list(summary["Vehicle"]) == ["truck-7"]
    assert summary.loc[0, "Stops"] == 1
    assert stops.loc[0, "Duration (min)"] == 7.0
    assert rejected.loc[0, "Row"] == 4
    assert "vehicle_id" in rejected.loc[0, "Fields"]
    # No geofences supplied: placeholder row instead of an empty sheet.
    assert list(compliance.columns) == ["Message"]
