"""Data models shared by the GPS telemetry pipeline.

Immutable value objects are pydantic models; mutable per-file state and
array-carrying records are dataclasses.
"""

from __future__ import annotations

import datetime
import pathlib
from dataclasses import dataclass
from enum import StrEnum

import numpy as np
import pydantic

# ---------------------------------------------------------------------------
# Schema tags
# ---------------------------------------------------------------------------


class SchemaKey(StrEnum):
    """GPMF FourCC keys the dispatcher knows how to interpret."""

    GPSU = "GPSU"  # UTC clock sync, "YYMMDDHHMMSS.fff"
    GPSF = "GPSF"  # fix quality (Legacy)
    GPSP = "GPSP"  # precision, DOP x 100 (Legacy)
    GPS5 = "GPS5"  # lat, lon, alt, 2D speed, 3D speed
    GPS9 = "GPS9"  # GPS5 fields + days, secs, DOP, fix


class SchemaGeneration(StrEnum):
    LEGACY = "LEGACY"
    CONSOLIDATED = "CONSOLIDATED"


# ---------------------------------------------------------------------------
# Decoded GPMF data
# ---------------------------------------------------------------------------


@dataclass
class DecodedBlock:
    """One leaf GPMF item, decoded and scaled.

    ``values`` has shape ``(samples, elements)``.  String items (GPSU) carry
    zero numeric elements and one entry per sample in ``text``.
    """

    key: str
    samples: int
    elements: int
    values: np.ndarray
    text: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.values.shape != (self.samples, self.elements):
            raise ValueError(
                f"{self.key}: values shape {self.values.shape} does not match "
                f"{self.samples} samples x {self.elements} elements"
            )
        if self.text and len(self.text) != self.samples:
            raise ValueError(
                f"{self.key}: {len(self.text)} strings for {self.samples} samples"
            )


class PayloadTiming(pydantic.BaseModel):
    """The ``[start, finish)`` window of one payload, in file-local seconds."""

    model_config = pydantic.ConfigDict(frozen=True)

    index: int
    start: float
    finish: float

    @property
    def duration(self) -> float:
        return self.finish - self.start

    def step(self, samples: int) -> float:
        """Seconds between evenly spaced samples spread over the payload."""
        return self.duration / samples


# ---------------------------------------------------------------------------
# Filtering and carried state
# ---------------------------------------------------------------------------


class FilterThresholds(pydantic.BaseModel):
    """Fix / precision thresholds, fixed for a whole run."""

    model_config = pydantic.ConfigDict(frozen=True)

    min_fix: int | None = None
    max_precision: int | None = None


@dataclass
class RunningFixState:
    """Latest GPSF / GPSP values seen in a Legacy stream.

    Starts as "no lock, unknown precision" until the first side-channel
    block arrives.
    """

    fix: int = 0
    precision: int = 9999


# ---------------------------------------------------------------------------
# Per-file result
# ---------------------------------------------------------------------------


class FileSummary(pydantic.BaseModel):
    path: pathlib.Path
    payloads: int = 0
    rows_emitted: int = 0
    rows_dropped: int = 0
    generation: SchemaGeneration = SchemaGeneration.LEGACY
    end_time_s: float = 0.0
    """Finish time of the file's last payload (file-local seconds)."""

    time_base_s: float = 0.0
    """Run-relative offset applied to this file's ``cts`` values."""

    gps_start_utc: datetime.datetime | None = None
    fix_counts: dict[int, int] = pydantic.Field(default_factory=dict)
