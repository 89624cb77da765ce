"""Export readings to CSV or JSON files."""

from __future__ import annotations

import csv
import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from ..sync.models import Reading

logger = logging.getLogger(__name__)

_CSV_HEADER = [
    "id", "reading", "units", "name", "comment", "snack_pass", "source",
    "timestamp", "date", "synced", "photo_uri", "tags",
]


def _iso(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M:%S")


def export_csv(readings: list[Reading], path: str | Path) -> Path:
    """Write readings to a CSV file and return its path."""
    dest = Path(path)
    dest.parent.mkdir(parents=True, exist_ok=True)
    with dest.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(_CSV_HEADER)
        for r in readings:
            writer.writerow([
                r.id, r.value, r.units, r.owner_name, r.comment or "", r.snack_pass, r.source,
                r.timestamp, _iso(r.timestamp), r.synced, r.photo_uri or "", r.tags or "",
            ])
    logger.info("Exported %d readings to %s", len(readings), dest)
    return dest


def export_json(readings: list[Reading], path: str | Path) -> Path:
    """Write readings to a JSON document with export metadata."""
    dest = Path(path)
    dest.parent.mkdir(parents=True, exist_ok=True)
    document = {
        "exportDate": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "totalReadings": len(readings),
        "readings": [
            {
                "id": r.id,
                "reading": r.value,
                "units": r.units,
                "name": r.owner_name,
                "comment": r.comment,
                "snackPass": r.snack_pass,
                "source": r.source,
                "timestamp": r.timestamp,
                "date": _iso(r.timestamp),
                "synced": r.synced,
                "photoUri": r.photo_uri,
                "tags": r.tags_list(),
            }
            for r in readings
        ],
    }
    dest.write_text(json.dumps(document, indent=2), encoding="utf-8")
    logger.info("Exported %d readings to %s", len(readings), dest)
    return dest
