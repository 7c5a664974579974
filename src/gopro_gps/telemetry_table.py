"""Read an emitted GPS table back into a validated DataFrame."""

from __future__ import annotations

import pathlib
from typing import TextIO

import pandas as pd
import pandera.pandas as pa

from gopro_gps.config import config
from gopro_gps.processing.record_emitter import COLUMN_NAMES, FILE_COLUMN

# Output header name → DataFrame column name
_COLUMN_RENAMES: dict[str, str] = dict(
    zip(
        COLUMN_NAMES,
        (
            "cts",
            "date",
            "lat",
            "lon",
            "alt",
            "speed_2d",
            "speed_3d",
            "fix",
            "precision",
        ),
    )
)

telemetry_table_schema = pa.DataFrameSchema(
    columns={
        FILE_COLUMN: pa.Column(str, required=False, nullable=False),
        "cts": pa.Column(
            float,
            checks=pa.Check(
                lambda s: s.is_monotonic_increasing,
                name="is_monotonic",
                error="cts must never decrease within a run",
            ),
            nullable=False,
        ),
        "date": pa.Column("datetime64[ns, UTC]", nullable=False),
        "lat": pa.Column(float, checks=pa.Check.in_range(-90.0, 90.0)),
        "lon": pa.Column(float, checks=pa.Check.in_range(-180.0, 180.0)),
        "alt": pa.Column(float),
        "speed_2d": pa.Column(float),
        "speed_3d": pa.Column(float),
        "fix": pa.Column(int, checks=pa.Check.ge(0)),
        "precision": pa.Column(int, checks=pa.Check.ge(0)),
    },
    strict=True,
    coerce=True,
)


def read_telemetry_table(source: str | pathlib.Path | TextIO) -> pd.DataFrame:
    """Parse a table written by :class:`RecordEmitter` and validate it."""
    df = pd.read_csv(
        source,
        sep=config.DELIMITER.strip() or ",",
        skipinitialspace=True,
        quotechar='"',
    )
    df = df.rename(columns=_COLUMN_RENAMES)
    if not df.empty:
        df["date"] = pd.to_datetime(df["date"], utc=True, format="ISO8601")
    return telemetry_table_schema.validate(df)
