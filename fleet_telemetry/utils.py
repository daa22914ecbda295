"""General utility helpers shared across modules."""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
import json
import math
from typing import Any

import numpy as np


def to_utc_aware(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are UTC)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or pass datetimes through.

    Returns None for anything that is not a recognisable instant.
    """

    if isinstance(value, datetime):
        return value
    if hasattr(value, "to_pydatetime"):
        # pandas.Timestamp
        return value.to_pydatetime()
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def canonical_instant(value: datetime) -> datetime:
    """UTC-aware datetime truncated to milliseconds (stable across round trips)."""

    aware = to_utc_aware(value)
    return aware.replace(microsecond=(aware.microsecond // 1000) * 1000)


_TRUE_TOKENS = {"1", "true", "yes", "on"}
_FALSE_TOKENS = {"0", "false", "no", "off"}


def as_bool(value: Any, default: bool) -> bool:
    """Interpret bools, numbers and ``"true"``/``"off"`` style strings.

    Anything unrecognised (including None) yields ``default``.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_TOKENS:
            return True
        if normalized in _FALSE_TOKENS:
            return False
    return default


def as_finite_float(value: Any) -> float | None:
    """Return ``value`` as a finite float, or None if it is not numeric."""

    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _normalise_value(value: Any) -> Any:
    """Convert objects to JSON-friendly representations."""

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _normalise_value(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore")
    if isinstance(value, (set, frozenset)):
        return sorted(_normalise_value(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [_normalise_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _normalise_value(val) for key, val in value.items()}
    return value


def to_jsonable(value: Any) -> Any:
    """Public wrapper returning plain dict/list/str/number structures."""

    return _normalise_value(value)


def json_dumps_sorted(value: Any) -> str:
    """Return canonical JSON for reports, hashing and comparisons."""

    normalised = _normalise_value(value)
    return json.dumps(normalised, sort_keys=True, separators=(",", ":"))
