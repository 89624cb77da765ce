"""Tests for glucose_sync/utils/export.py."""

import csv
import json

from glucose_sync.sync.models import Reading
from glucose_sync.utils.export import export_csv, export_json


def _readings() -> list[Reading]:
    return [
        Reading(id="a", value=7.2, owner_name="alice", comment="lunch", timestamp=1_700_000_000_000,
                synced=True, tags="Post-Meal,Afternoon"),
        Reading(id="b", value=130, owner_name="alice", units="mg/dL", timestamp=1_700_000_100_000),
    ]


def test_export_csv(tmp_path):
    dest = export_csv(_readings(), tmp_path / "out" / "readings.csv")
    with dest.open(newline="", encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert len(rows) == 2
    assert rows[0]["id"] == "a"
    assert rows[0]["reading"] == "7.2"
    assert rows[0]["tags"] == "Post-Meal,Afternoon"
    assert rows[0]["date"] == "2023-11-14 22:13:20"
    assert rows[1]["units"] == "mg/dL"
    assert rows[1]["comment"] == ""


def test_export_json(tmp_path):
    dest = export_json(_readings(), tmp_path / "readings.json")
    doc = json.loads(dest.read_text(encoding="utf-8"))
    assert doc["totalReadings"] == 2
    assert "exportDate" in doc
    first = doc["readings"][0]
    assert first["snackPass"] is False
    assert first["tags"] == ["Post-Meal", "Afternoon"]
    assert doc["readings"][1]["tags"] == []


def test_export_empty(tmp_path):
    doc = json.loads(export_json([], tmp_path / "empty.json").read_text())
    assert doc["totalReadings"] == 0
    assert doc["readings"] == []
