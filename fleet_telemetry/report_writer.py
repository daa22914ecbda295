"""Excel export for telemetry analysis results."""

from __future__ import annotations

from datetime import datetime
import logging
from os import PathLike
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from .config import (
    EXCEL_AUTOSIZE_COLUMNS,
    EXCEL_AUTOSIZE_MAX_ROWS,
    EXCEL_AUTOSIZE_MAX_WIDTH,
    EXCEL_AUTOSIZE_MIN_WIDTH,
    EXCEL_AUTOSIZE_PADDING,
)
from .services.telemetry_service import TelemetryAnalysis

VEHICLE_SUMMARY_SHEET = "Vehicle Summary"
STOPS_SHEET = "Stops"
FINDINGS_SHEET = "Findings"
REJECTED_SHEET = "Rejected Rows"
COMPLIANCE_SHEET = "Geofence Compliance"
HOURLY_SHEET = "Hourly Activity"
MAX_SHEET_NAME_LEN = 31
EXCEL_DATETIME_FORMAT = "yyyy-mm-dd hh:mm:ss"

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(patternType="solid", fgColor="FFDDEBF7")
HEADER_BORDER = Border(
    left=Side(style="thin", color="000000"),
    right=Side(style="thin", color="000000"),
    top=Side(style="thin", color="000000"),
    bottom=Side(style="thin", color="000000"),
)

LOGGER = logging.getLogger(__name__)

PathInput = str | Path | PathLike[str]


def _excel_time(value: datetime) -> datetime:
    # Excel has no timezone support; timestamps are written as naive UTC.
    return value.replace(tzinfo=None)


def _unique_sheet_name(base: str, used: set[str]) -> str:
    base = base[:MAX_SHEET_NAME_LEN]
    name = base
    i = 1
    while name in used:
        suffix = f"_{i}"
        name = base[: MAX_SHEET_NAME_LEN - len(suffix)] + suffix
        i += 1
    used.add(name)
    return name


def _autosize(ws: Worksheet) -> None:
    if not EXCEL_AUTOSIZE_COLUMNS:
        return
    if ws.max_row > EXCEL_AUTOSIZE_MAX_ROWS:
        return
    for col_cells in ws.columns:
        max_len = 0
        col_letter = getattr(col_cells[0], "column_letter", None)
        for cell in col_cells:
            if cell.value is None:
                continue
            max_len = max(max_len, len(str(cell.value)))
        width = min(
            EXCEL_AUTOSIZE_MAX_WIDTH,
            max(EXCEL_AUTOSIZE_MIN_WIDTH, max_len + EXCEL_AUTOSIZE_PADDING),
        )
        if col_letter:
            ws.column_dimensions[col_letter].width = width


def _style_header_row(ws: Worksheet) -> None:
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = HEADER_BORDER


def vehicle_summary_rows(analysis: TelemetryAnalysis) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for vehicle_id, vehicle in analysis.vehicles.items():
        totals = vehicle.movement.totals
        rows.append(
            {
                "Vehicle": vehicle_id,
                "Coordinates": vehicle.coordinate_count,
                "Distance (km)": round(totals.distance_km, 3),
                "Moving (min)": round(totals.moving_minutes, 2),
                "Idle (min)": round(totals.idle_minutes, 2),
                "Avg Speed (km/h)": round(totals.average_speed_kmh, 2),
                "Max Speed (km/h)": round(totals.max_speed_kmh, 2),
                "Stops": len(vehicle.movement.stops),
                "Findings": len(vehicle.anomalies.findings),
                "Recommendation": vehicle.anomalies.recommendation,
                "Efficiency (%)": round(vehicle.efficiency.efficiency, 1),
                "Performance Score": round(vehicle.performance.overall_score, 1),
                "Fuel (km/L)": round(vehicle.performance.fuel_efficiency_kmpl, 2),
                "High Quality": vehicle.quality_counts.get("high", 0),
                "Medium Quality": vehicle.quality_counts.get("medium", 0),
                "Low Quality": vehicle.quality_counts.get("low", 0),
                "Duplicates": vehicle.duplicates,
                "Out Of Sequence": vehicle.out_of_sequence_count,
            }
        )
    return rows


def stop_rows(analysis: TelemetryAnalysis) -> List[Dict[str, Any]]:
    return [
        {
            "Vehicle": vehicle_id,
            "Latitude": stop.location.latitude,
            "Longitude": stop.location.longitude,
            "Start": _excel_time(stop.start_time),
            "End": _excel_time(stop.end_time),
            "Duration (min)": round(stop.duration_minutes, 2),
        }
        for vehicle_id, vehicle in analysis.vehicles.items()
        for stop in vehicle.movement.stops
    ]


def finding_rows(analysis: TelemetryAnalysis) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for vehicle_id, vehicle in analysis.vehicles.items():
        for finding in vehicle.anomalies.findings:
            involved = finding.involved_coordinates
            rows.append(
                {
                    "Vehicle": vehicle_id,
                    "Type": finding.type.value,
                    "Severity": finding.severity.value,
                    "Description": finding.description,
                    "Points": len(involved),
                    "First": _excel_time(involved[0].timestamp) if involved else None,
                    "Last": _excel_time(involved[-1].timestamp) if involved else None,
                }
            )
    return rows


def rejected_rows(analysis: TelemetryAnalysis) -> List[Dict[str, Any]]:
    return [
        {
            "Row": row.index,
            "Fields": ", ".join(sorted({issue.field for issue in row.issues})),
            "Errors": "; ".join(issue.message for issue in row.issues),
        }
        for row in analysis.rejected
    ]


def compliance_rows(analysis: TelemetryAnalysis) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for report in analysis.geofence_reports:
        for vehicle_id, activity in sorted(report.per_vehicle_activity.items()):
            rows.append(
                {
                    "Geofence": report.geofence_id,
                    "Vehicle": vehicle_id,
                    "Entries": activity.entries,
                    "Exits": activity.exits,
                    "Violations": activity.violations,
                }
            )
        rows.append(
            {
                "Geofence": report.geofence_id,
                "Vehicle": "TOTAL",
                "Entries": report.total_entries,
                "Exits": report.total_exits,
                "Violations": report.violations_count,
            }
        )
    return rows


def write_analysis(filepath: PathInput, analysis: TelemetryAnalysis) -> List[str]:
    """Write one sheet per result family; returns the sheet names written."""

    sheets = [
        (VEHICLE_SUMMARY_SHEET, vehicle_summary_rows(analysis)),
        (STOPS_SHEET, stop_rows(analysis)),
        (FINDINGS_SHEET, finding_rows(analysis)),
        (REJECTED_SHEET, rejected_rows(analysis)),
        (COMPLIANCE_SHEET, compliance_rows(analysis)),
    ]
    used_sheet_names: set[str] = set()
    with pd.ExcelWriter(
        str(Path(filepath)), engine="openpyxl", datetime_format=EXCEL_DATETIME_FORMAT
    ) as writer:
        for base, rows in sheets:
            sheet_name = _unique_sheet_name(base, used_sheet_names)
            frame = pd.DataFrame(rows)
            if frame.empty:
                frame = pd.DataFrame({"Message": ["No rows."]})
            frame.to_excel(writer, sheet_name=sheet_name, index=False)
            LOGGER.info("Wrote sheet %s rows=%d", sheet_name, len(rows))
        hourly_name = _unique_sheet_name(HOURLY_SHEET, used_sheet_names)
        analysis.hourly.to_excel(writer, sheet_name=hourly_name, index=False)
        for sheet_name in used_sheet_names:
            ws = writer.sheets[sheet_name]
            _style_header_row(ws)
            _autosize(ws)
    return [name for name, _ in sheets] + [HOURLY_SHEET]


__all__ = ["write_analysis"]
