"""Absolute UTC clock reconstruction for GPS samples.

GPMF only stamps a payload with a coarse UTC value (``GPSU``, roughly once a
second) or, for GPS9, an absolute day/second pair in the first sample.  Every
other sample time is obtained by advancing the clock by the even spacing of
samples over the payload window.
"""

from __future__ import annotations

import calendar
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from gopro_gps.config import config
from gopro_gps.errors import CorruptData

SECONDS_PER_DAY = 86400


@dataclass
class ClockState:
    """Whole-second UTC epoch plus a millisecond fraction in ``[0, 1000)``."""

    absolute_seconds: int = 0
    fraction_millis: float = 0.0

    def advance(self, step_millis: float) -> None:
        self.fraction_millis += step_millis
        while self.fraction_millis >= 1000.0:
            self.fraction_millis -= 1000.0
            self.absolute_seconds += 1

    def set_from_sync(self, epoch_seconds: int, fraction_millis: float) -> None:
        self.absolute_seconds = int(epoch_seconds)
        self.fraction_millis = float(fraction_millis)

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(
            self.absolute_seconds, tz=timezone.utc
        ).replace(microsecond=int(self.fraction_millis * 1000))

    def iso_format(self) -> str:
        """``YYYY-MM-DDTHH:MM:SS.mmmZ`` with truncated milliseconds."""
        whole = datetime.fromtimestamp(self.absolute_seconds, tz=timezone.utc)
        return f"{whole:%Y-%m-%dT%H:%M:%S}.{int(self.fraction_millis):03d}Z"


# ---------------------------------------------------------------------------
# GPSU parsing
# ---------------------------------------------------------------------------

_GPSU_RE = re.compile(r"^(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})\.(\d{3})")


def parse_gpsu(gpsu: str) -> tuple[int, int]:
    """Parse a GPMF ``GPSU`` string into ``(epoch_seconds, milliseconds)``.

    Format: ``YYMMDDHHMMSS.fff``  e.g. ``"210615123456.789"``
    """
    m = _GPSU_RE.match(gpsu)
    if m is None:
        raise CorruptData(f"Malformed GPSU timestamp: {gpsu!r}")
    yy, mo, dd, hh, mi, ss, millis = (int(g) for g in m.groups())
    try:
        # validates month/day ranges; GPSU months are 1-based
        when = datetime(2000 + yy, mo, dd, hh, mi, ss, tzinfo=timezone.utc)
    except ValueError as exc:
        raise CorruptData(f"Invalid GPSU timestamp {gpsu!r}: {exc}") from exc
    return calendar.timegm(when.utctimetuple()), millis


def gps9_epoch_seconds(days: float, seconds_of_day: float) -> tuple[int, int]:
    """Convert the GPS9 days-since-2000 / seconds-of-day pair to an epoch.

    Returns ``(epoch_seconds, milliseconds)``.
    """
    base = calendar.timegm(config.GPS9_EPOCH.utctimetuple())
    sub_secs = math.fmod(seconds_of_day, 1.0)
    epoch = base + int(days) * SECONDS_PER_DAY + int(seconds_of_day - sub_secs)
    return epoch, int(1000.0 * sub_secs)
