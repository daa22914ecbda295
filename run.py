#!/usr/bin/env python3
"""Convenience runner for the fleet telemetry analyser.

Usage:
    python run.py telemetry.csv --geofences geofences.json --excel-out report.xlsx
"""
import logging
from fleet_telemetry.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    raise SystemExit(main())
