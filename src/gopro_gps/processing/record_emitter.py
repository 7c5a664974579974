"""Delimited text output for GPS samples."""

from __future__ import annotations

import pathlib
from enum import StrEnum
from typing import Sequence, TextIO

from gopro_gps.config import config

FILE_COLUMN = "file"

# Column names after the optional file column, in output order
COLUMN_NAMES: tuple[str, ...] = (
    "cts",
    "date",
    "GPS (Lat.) [deg]",
    "GPS (Long.) [deg]",
    "GPS (Alt.) [m]",
    "GPS (2D speed) [m/s]",
    "GPS (3D speed) [m/s]",
    "fix",
    "precision",
)


class IdentityColumn(StrEnum):
    """What, if anything, identifies the source file on each row."""

    NONE = "none"
    FILENAME = "filename"
    FILEPATH = "filepath"

    @classmethod
    def from_flags(cls, print_filename: bool, print_filepath: bool) -> IdentityColumn:
        if print_filepath:
            return cls.FILEPATH
        if print_filename:
            return cls.FILENAME
        return cls.NONE

    def label(self, path: str | pathlib.Path) -> str | None:
        match self:
            case IdentityColumn.FILEPATH:
                return str(path)
            case IdentityColumn.FILENAME:
                return pathlib.Path(path).name
            case _:
                return None


class RecordEmitter:
    """Writes the header (once) and one row per emitted GPS sample."""

    def __init__(
        self,
        stream: TextIO,
        identity: IdentityColumn = IdentityColumn.NONE,
        delimiter: str | None = None,
    ):
        self.stream = stream
        self.identity = identity
        self.delimiter = config.DELIMITER if delimiter is None else delimiter
        self.header_written = False
        self.rows_written = 0

    @property
    def columns(self) -> tuple[str, ...]:
        if self.identity is IdentityColumn.NONE:
            return COLUMN_NAMES
        return (FILE_COLUMN, *COLUMN_NAMES)

    def write_header(self) -> None:
        if self.header_written:
            return
        self.stream.write(
            self.delimiter.join(f'"{name}"' for name in self.columns) + "\n"
        )
        self.header_written = True

    def emit(
        self,
        identity: str | None,
        cts_millis: float,
        date: str,
        fields: Sequence[float],
        fix: int,
        precision: int,
    ) -> None:
        """Write one data row.

        *fields* are latitude, longitude, altitude, 2D speed and 3D speed.
        """
        self.write_header()
        parts: list[str] = []
        if self.identity is not IdentityColumn.NONE:
            parts.append(f'"{identity}"')
        parts.append(f"{cts_millis:f}")
        parts.append(date)
        parts.extend(f"{value:.6f}" for value in fields)
        parts.append(str(int(fix)))
        parts.append(str(int(precision)))
        self.stream.write(self.delimiter.join(parts) + "\n")
        self.rows_written += 1
