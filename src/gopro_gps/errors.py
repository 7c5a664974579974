"""Error kinds raised while extracting GPS telemetry.

Every error is fatal to a run: the file being processed is abandoned and the
CLI exits with a non-zero status.
"""


class TelemetryError(Exception):
    """Base class for all telemetry extraction failures."""


class InvalidContainer(TelemetryError, RuntimeError):
    """The file cannot be opened or carries no GPMF (``gpmd``) track."""


class NoTimingData(TelemetryError, ValueError):
    """A payload has no usable ``[start, finish)`` time range."""


class UnknownType(TelemetryError, ValueError):
    """The GPMF stream uses a value type the decoder does not understand."""


class CorruptData(TelemetryError, ValueError):
    """The GPMF stream is structurally invalid."""
