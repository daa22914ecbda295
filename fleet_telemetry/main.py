"""Command line entry point: analyse a telemetry file and export the results."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

from .analytics import FUEL_CONSUMPTION_L_PER_100KM
from .config import DEFAULT_VEHICLE_TYPE
from .errors import GeofenceGeometryError, InputFormatError
from .report_writer import write_analysis
from .services import TelemetryService, TelemetryServiceConfig
from .telemetry_reader import read_geofences, read_reports
from .utils import json_dumps_sorted

LOGGER = logging.getLogger(__name__)


def _setup_logging(level: str = "INFO") -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=numeric,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )
    else:
        logging.getLogger().setLevel(numeric)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Validate GPS telemetry and report movement, anomalies and geofence compliance"
    )
    parser.add_argument("input", help="CSV or JSON file of raw position reports")
    parser.add_argument("--geofences", help="JSON file with geofence definitions")
    parser.add_argument(
        "--json-out", help="Write the JSON analysis here instead of stdout"
    )
    parser.add_argument("--excel-out", help="Also write an Excel workbook here")
    parser.add_argument(
        "--vehicle-type",
        default=DEFAULT_VEHICLE_TYPE,
        choices=sorted(FUEL_CONSUMPTION_L_PER_100KM),
        help="Fuel model for performance scores (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    _setup_logging(args.log_level)

    try:
        reports = read_reports(args.input)
        geofences = read_geofences(args.geofences) if args.geofences else []
    except (InputFormatError, GeofenceGeometryError, FileNotFoundError) as exc:
        LOGGER.error("Failed to load input: %s", exc)
        return 2

    service = TelemetryService(TelemetryServiceConfig(vehicle_type=args.vehicle_type))
    analysis = service.analyze_batch(reports, geofences)
    payload = json_dumps_sorted(analysis.to_dict())
    if args.json_out:
        Path(args.json_out).write_text(payload + "\n", encoding="utf-8")
        LOGGER.info("Analysis written to %s", args.json_out)
    else:
        sys.stdout.write(payload + "\n")

    if args.excel_out:
        sheets = write_analysis(args.excel_out, analysis)
        LOGGER.info("Workbook saved to %s (sheets=%d)", args.excel_out, len(sheets))
    LOGGER.info(
        "Analysed %d vehicle(s); rejected %d report(s)",
        len(analysis.vehicles),
        len(analysis.rejected),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
