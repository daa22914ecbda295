import json
import os
import tempfile

import pandas as pd

from fleet_telemetry.main import main


CSV_ROWS = """vehicle_id,latitude,longitude,timestamp,speed,accuracy
007,4.6000,-74.0800,2025-01-06T08:00:00Z,0,5
007,4.6090,-74.0800,2025-01-06T08:01:00Z,60,5
007,4.6180,-74.0800,2025-01-06T08:02:00Z,,5
008,95.0,-74.0800,2025-01-06T08:00:00Z,10,5
"""

GEOFENCES = [
    {
        "id": "depot",
        "name": "Depot",
        "type": "circle",
        "center": {"latitude": 4.6, "longitude": -74.08},
        "radiusMeters": 150,
        "assignedVehicleIds": ["007"],
    }
]


def test_cli_writes_json_and_excel():
    with tempfile.TemporaryDirectory() as td:
        csv_path = os.path.join(td, "reports.csv")
        geo_path = os.path.join(td, "geofences.json")
        json_path = os.path.join(td, "analysis.json")
        xlsx_path = os.path.join(td, "analysis.xlsx")
        with open(csv_path, "w", encoding="utf-8") as handle:
            handle.write(CSV_ROWS)
        with open(geo_path, "w", encoding="utf-8") as handle:
            json.dump(GEOFENCES, handle)

        code = main(
            [csv_path, "--geofences", geo_path, "--json-out", json_path,
             "--excel-out", xlsx_path, "--log-level", "WARNING"]
        )
        assert code == 0
        with open(json_path, encoding="utf-8") as handle:
            payload = json.load(handle)
        assert list(payload["vehicles"]) == ["007"]
        assert payload["vehicles"]["007"]["coordinate_count"] == 3
        assert payload["rejected"][0]["index"] == 3
        assert payload["geofence_reports"][0]["total_entries"] == 1
        with pd.ExcelFile(xlsx_path) as xf:
            assert "Vehicle Summary" in xf.sheet_names


def test_cli_reads_json_reports_to_stdout(capsys):
    with tempfile.TemporaryDirectory() as td:
        path = os.path.join(td, "reports.json")
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(
                {"coordinates": [
                    {"vehicleId": "v1", "lat": 1.0, "lng": 2.0, "timestamp": "2025-01-06T08:00:00Z"},
                    {"vehicleId": "v1", "lat": 1.0, "lng": 2.0, "timestamp": "2025-01-06T08:01:00Z"},
                ]},
                handle,
            )
        assert main([path, "--log-level", "ERROR"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["vehicles"]["v1"]["coordinate_count"] == 2


def test_cli_reports_bad_input():
    with tempfile.TemporaryDirectory() as td:
        path = os.path.join(td, "reports.txt")
        with open(path, "w", encoding="utf-8") as handle:
            handle.write("nope")
        assert main([path, "--log-level", "ERROR"]) == 2
        assert main([os.path.join(td, "missing.csv"), "--log-level", "ERROR"]) == 2
