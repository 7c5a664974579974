from gopro_gps.telemetry_data import FilterThresholds


class FilterPolicy:
    """Decides whether a GPS sample is good enough to be written out."""

    def __init__(self, thresholds: FilterThresholds | None = None):
        self.thresholds = thresholds or FilterThresholds()

    def passes(self, fix: int, precision: int) -> bool:
        min_fix = self.thresholds.min_fix
        max_precision = self.thresholds.max_precision
        return (min_fix is None or fix >= min_fix) and (
            max_precision is None or precision <= max_precision
        )
