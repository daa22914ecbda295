"""Readers for raw telemetry and geofence definition files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from .errors import GeofenceGeometryError, InputFormatError
from .models import Geofence
from .validation import validate_geofence

LOGGER = logging.getLogger(__name__)

# Identifier columns must stay text; "007" is not the number 7.
_TEXT_COLUMNS = {"vehicle_id": str, "vehicleId": str, "vehicle": str, "timestamp": str}


def _assert_file_exists(path: Path) -> None:
    if not path.is_file():
        raise FileNotFoundError(f"Input file not found: {path}")


def _load_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        raise InputFormatError(f"Invalid JSON in {path}: {exc}") from exc


def _records_from_frame(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    cleaned = frame.astype(object).where(frame.notna(), None)
    return cleaned.to_dict(orient="records")


def read_reports(path: str | Path) -> List[Dict[str, Any]]:
    """Load raw reports from a ``.csv`` or ``.json`` file as plain dicts.

    JSON may be a list of reports or an object with a ``coordinates`` list.
    Values are passed through untouched; validation happens later.
    """

    source = Path(path)
    _assert_file_exists(source)
    suffix = source.suffix.lower()
    if suffix == ".csv":
        try:
            frame = pd.read_csv(source, dtype=_TEXT_COLUMNS)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            raise InputFormatError(f"Unreadable CSV {source}: {exc}") from exc
        records = _records_from_frame(frame)
    elif suffix == ".json":
        payload = _load_json(source)
        if isinstance(payload, dict):
            payload = payload.get("coordinates")
        if not isinstance(payload, list):
            raise InputFormatError(
                f"{source} must contain a list of reports or a 'coordinates' list"
            )
        records = [row for row in payload if isinstance(row, dict)]
        if len(records) != len(payload):
            raise InputFormatError(f"{source} contains entries that are not objects")
    else:
        raise InputFormatError(f"Unsupported input format {suffix!r}; use .csv or .json")
    LOGGER.info("Loaded %d raw reports from %s", len(records), source)
    return records


def read_geofences(path: str | Path) -> List[Geofence]:
    """Load and validate geofences from a JSON list (or ``{"geofences": [...]}``).

    Raises:
        InputFormatError: The file is not a list of geofence objects.
        GeofenceGeometryError: A geofence violates a hard constraint.
    """

    source = Path(path)
    _assert_file_exists(source)
    payload = _load_json(source)
    if isinstance(payload, dict):
        payload = payload.get("geofences")
    if not isinstance(payload, list):
        raise InputFormatError(f"{source} must contain a list of geofences")

    geofences: List[Geofence] = []
    for position, entry in enumerate(payload, start=1):
        if not isinstance(entry, dict):
            raise InputFormatError(f"Geofence #{position} in {source} is not an object")
        try:
            geofence = Geofence.from_mapping(entry)
        except (TypeError, ValueError) as exc:
            raise InputFormatError(f"Geofence #{position} in {source}: {exc}") from exc
        result = validate_geofence(geofence)
        if not result.is_valid:
            raise GeofenceGeometryError(
                [f"Geofence {geofence.id or position}: {e}" for e in result.errors]
            )
        for issue in result.geometry_issues:
            LOGGER.warning("Geofence %s: %s", geofence.id or position, issue)
        geofences.append(geofence)
    LOGGER.info("Loaded %d geofences from %s", len(geofences), source)
    return geofences


__all__ = ["read_geofences", "read_reports"]
