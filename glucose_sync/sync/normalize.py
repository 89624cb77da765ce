"""Turn raw remote reading records into local Reading objects."""

from __future__ import annotations

from typing import Any, Callable

from .errors import NormalizationSkipped
from .models import GlucoseUnit, Reading, new_reading_id, now_millis


def _timestamp_millis(raw: Any) -> int | None:
    """Parse a server timestamp object into epoch milliseconds.

    The server emits either ``{"_seconds", "_nanoseconds"}`` or
    ``{"seconds", "nanoseconds"}``. Returns None when no seconds field is present.
    """
    if not isinstance(raw, dict):
        return None
    seconds = raw.get("_seconds")
    if seconds is None:
        seconds = raw.get("seconds")
    if seconds is None:
        return None
    nanos = raw.get("_nanoseconds")
    if nanos is None:
        nanos = raw.get("nanoseconds")
    return int(seconds) * 1000 + int(nanos or 0) // 1_000_000


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _snack_pass(raw: Any) -> bool:
    """Accept a JSON boolean, 0/1, or the strings ``"true"``/``"false"`` in any case."""
    if raw is None:
        return False
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str) and raw.strip().lower() in ("true", "false"):
        return raw.strip().lower() == "true"
    raise ValueError(f"snackPass is not a boolean: {raw!r}")


def normalize_record(
    record: Any,
    default_unit: GlucoseUnit = GlucoseUnit.MMOL_L,
    clock: Callable[[], int] = now_millis,
) -> Reading:
    """Build a confirmed Reading from one remote record.

    Missing fields are defaulted: the id is generated, the value falls back
    to the nested ``glucoseLevel`` detail and then to 0, the timestamp falls
    back to now. Remote records never carry a local photo.

    Raises:
        NormalizationSkipped: The record is not an object or a field has an unusable type.
    """
    if not isinstance(record, dict):
        raise NormalizationSkipped(f"record is not an object: {type(record).__name__}")

    detail = record.get("glucoseLevel")
    if not isinstance(detail, dict):
        detail = {}

    try:
        raw_value = record.get("reading")
        if raw_value is None:
            raw_value = detail.get("glucoseLevel")
        value = float(raw_value) if raw_value is not None else 0.0

        level = detail.get("glucoseLevel")
        glucose_level = int(float(level)) if level is not None else None

        timestamp = _timestamp_millis(record.get("timestamp"))
        if timestamp is None:
            timestamp = _timestamp_millis(record.get("ts"))

        snack_pass = _snack_pass(record.get("snackPass"))
    except (TypeError, ValueError) as exc:
        raise NormalizationSkipped(f"record {record.get('id') or record.get('readingId')}: {exc}") from exc

    units = record.get("units")
    unit = GlucoseUnit.from_string(units) if units else default_unit

    return Reading(
        id=_optional_str(record.get("id") or record.get("readingId")) or new_reading_id(),
        value=value,
        owner_name=_optional_str(record.get("name")) or "",
        units=unit.value,
        comment=_optional_str(record.get("comment")),
        snack_pass=snack_pass,
        source=_optional_str(record.get("source")) or "manual",
        timestamp=timestamp if timestamp is not None else clock(),
        color=_optional_str(record.get("color") or detail.get("color")),
        glucose_level=glucose_level,
        synced=True,
        photo_uri=None,
    )
