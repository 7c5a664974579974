"""Command line behaviour of ``gopro-gps-telemetry``."""

import pathlib

import pytest
from conftest import klv, nest, pack_samples

from gopro_gps.errors import InvalidContainer
from gopro_gps.processing.payload_source import FFprobePayloadSource
from gopro_gps.scripts import extract_gps_telemetry

GPS5_SCAL = (10_000_000, 10_000_000, 1000, 1000, 100)


def legacy_payload(gpsu, fix, precision, rows):
    strm = nest(
        "STRM",
        klv("GPSF", "L", 4, 1, pack_samples("L", [(fix,)])),
        klv("GPSU", "U", 16, 1, gpsu),
        klv("GPSP", "S", 2, 1, pack_samples("H", [(precision,)])),
        klv("SCAL", "l", 4, 5, pack_samples("l", [(s,) for s in GPS5_SCAL])),
        klv("GPS5", "l", 20, len(rows), pack_samples("lllll", rows)),
    )
    return nest("DEVC", strm)


ROWS = [(522700000, 209100000, 101250, 5000, 550)] * 2


def source_for(path, *payloads):
    packets = [
        {"size": str(len(p)), "pts_time": str(float(i)), "duration_time": "1.0"}
        for i, p in enumerate(payloads)
    ]
    return FFprobePayloadSource(pathlib.Path(path), packets, b"".join(payloads))


@pytest.fixture
def sources(monkeypatch):
    files = {}

    def fake_open(path):
        if str(path) not in files:
            raise InvalidContainer(f"{path} has no GPMF data")
        return files[str(path)]

    monkeypatch.setattr(extract_gps_telemetry, "open_payload_source", fake_open)
    return files


def test_no_files_prints_usage(capsys):
    assert extract_gps_telemetry.main([]) == -1
    assert "usage:" in capsys.readouterr().err


def test_bad_threshold_value(capsys):
    assert extract_gps_telemetry.main(["--min_fix=three", "a.MP4"]) == -1
    assert capsys.readouterr().out == ""


def test_help_exits_cleanly():
    with pytest.raises(SystemExit) as exc:
        extract_gps_telemetry.main(["--help"])
    assert exc.value.code == 0


def test_extracts_rows_to_stdout(sources, capsys):
    sources["/v/GX010001.MP4"] = source_for(
        "/v/GX010001.MP4",
        legacy_payload(b"210615123456.000", 3, 180, ROWS),
        legacy_payload(b"210615123457.000", 3, 180, ROWS),
    )
    assert extract_gps_telemetry.main(["--print_filename", "/v/GX010001.MP4"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith('"file", "cts", "date"')
    assert len(lines) == 5
    assert lines[1] == (
        '"GX010001.MP4", 0.000000, 2021-06-15T12:34:56.000Z, 52.270000, '
        "20.910000, 101.250000, 5.000000, 5.500000, 3, 180"
    )
    assert lines[3].startswith('"GX010001.MP4", 1000.000000, 2021-06-15T12:34:57.000Z')


def test_thresholds_filter_rows(sources, capsys):
    sources["a.MP4"] = source_for(
        "a.MP4",
        legacy_payload(b"210615123456.000", 2, 180, ROWS),
        legacy_payload(b"210615123457.000", 3, 900, ROWS),
    )
    args = ["--min_fix=3", "--max_precision=500", "a.MP4"]
    assert extract_gps_telemetry.main(args) == 0
    assert capsys.readouterr().out.splitlines()[1:] == []


def test_invalid_file_fails_run(sources, capsys):
    sources["good.MP4"] = source_for(
        "good.MP4", legacy_payload(b"210615123456.000", 3, 180, ROWS)
    )
    assert extract_gps_telemetry.main(["missing.MP4", "good.MP4"]) == -1
    assert capsys.readouterr().out == ""


def test_corrupt_payload_fails_run(sources, capsys):
    sources["bad.MP4"] = source_for(
        "bad.MP4", legacy_payload(b"not-a-datetime!!", 3, 180, ROWS)
    )
    assert extract_gps_telemetry.main(["bad.MP4"]) == -1


def test_options_between_files(sources, capsys):
    for name in ("a.MP4", "b.MP4"):
        sources[name] = source_for(
            name, legacy_payload(b"210615123456.000", 2, 180, ROWS)
        )
    assert extract_gps_telemetry.main(["a.MP4", "--min_fix=3", "b.MP4"]) == 0
    assert capsys.readouterr().out.splitlines()[1:] == []
