"""Domain types: glucose readings, units and tags."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum

DEFAULT_PROFILE_ID = "00000000-0000-0000-0000-000000000001"

PREDEFINED_TAGS = [
    "Fasting",
    "Pre-Meal",
    "Post-Meal",
    "Exercise",
    "Bedtime",
    "Morning",
    "Afternoon",
    "Evening",
    "Night",
    "Sick",
    "Stressed",
    "Travel",
]

# mg/dL per mmol/L for glucose
MGDL_PER_MMOL = 18.0


class GlucoseUnit(str, Enum):
    MMOL_L = "mmol/L"
    MG_DL = "mg/dL"

    @classmethod
    def from_string(cls, value: str | None) -> "GlucoseUnit":
        """Case-insensitive lookup; unknown or missing values map to mmol/L."""
        if value:
            for unit in cls:
                if unit.value.lower() == value.strip().lower():
                    return unit
        return cls.MMOL_L


def now_millis() -> int:
    return int(time.time() * 1000)


def new_reading_id() -> str:
    return str(uuid.uuid4())


def tags_to_string(tags: list[str] | None) -> str | None:
    """Join non-blank tags with commas; ``None`` when nothing is left."""
    cleaned = [t.strip() for t in (tags or []) if t and t.strip()]
    return ",".join(cleaned) if cleaned else None


@dataclass
class Reading:
    """A glucose reading.

    ``synced`` is False while the reading exists only locally (pending) and
    True once the remote service has accepted it or it was pulled from there
    (confirmed). It never goes back to False.
    """

    id: str
    value: float
    owner_name: str
    units: str = GlucoseUnit.MMOL_L.value
    comment: str | None = None
    snack_pass: bool = False
    source: str = "manual"
    timestamp: int = 0
    color: str | None = None
    glucose_level: int | None = None
    synced: bool = False
    photo_uri: str | None = None
    tags: str | None = None
    profile_id: str = DEFAULT_PROFILE_ID

    def tags_list(self) -> list[str]:
        if not self.tags:
            return []
        return [t.strip() for t in self.tags.split(",") if t.strip()]

    def as_confirmed(self) -> "Reading":
        return replace(self, synced=True)

    @property
    def value_mmol(self) -> float:
        if GlucoseUnit.from_string(self.units) == GlucoseUnit.MG_DL:
            return self.value / MGDL_PER_MMOL
        return self.value
