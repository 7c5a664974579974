import pytest

from gopro_gps.processing.filter_policy import FilterPolicy
from gopro_gps.telemetry_data import FilterThresholds


@pytest.mark.parametrize(
    "min_fix, max_precision, fix, precision, expected",
    [
        (None, None, 0, 9999, True),
        (3, None, 3, 9999, True),
        (3, None, 2, 50, False),
        (None, 100, 0, 100, True),
        (None, 100, 3, 101, False),
        (3, 100, 3, 50, True),
        (3, 100, 3, 600, False),
        (3, 100, 2, 50, False),
    ],
)
def test_passes(min_fix, max_precision, fix, precision, expected):
    policy = FilterPolicy(FilterThresholds(min_fix=min_fix, max_precision=max_precision))
    assert policy.passes(fix, precision) is expected


def test_default_policy_passes_everything():
    assert FilterPolicy().passes(0, 65535)


def test_thresholds_are_immutable():
    thresholds = FilterThresholds(min_fix=3)
    with pytest.raises(Exception):
        thresholds.min_fix = 2
