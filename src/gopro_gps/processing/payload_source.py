"""Access to the GPMF payloads of an MP4/MOV container.

The ``gpmd`` track is demultiplexed with ``ffprobe`` (packet timing and
sizes) and ``ffmpeg`` (raw packet bytes); the raw stream is then split by the
packet sizes ffprobe reports.
"""

from __future__ import annotations

import json
import logging
import pathlib
import subprocess
import time
from typing import Any, Protocol

from gopro_gps.config import config
from gopro_gps.errors import CorruptData, InvalidContainer, NoTimingData

logger = logging.getLogger(__name__)


class PayloadSource(Protocol):
    def __enter__(self) -> PayloadSource: ...

    def __exit__(self, *exc_info: object) -> None: ...

    def payload_count(self) -> int: ...

    def payload_time_range(self, index: int) -> tuple[float, float]: ...

    def payload(self, index: int) -> bytes: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# ffprobe / ffmpeg helpers
# ---------------------------------------------------------------------------


def _run(args: list[str], path: pathlib.Path, text: bool) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(args, capture_output=True, text=text, check=True)
    except FileNotFoundError as exc:
        raise InvalidContainer(f"{args[0]} is not available: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        raise InvalidContainer(
            f"{path} is an invalid MP4/MOV ({args[0]} exited with {exc.returncode})"
        ) from exc


def _find_gpmf_stream_index(mp4_path: pathlib.Path) -> int:
    """Return the stream index of the ``gpmd`` track (GoPro Metadata)."""
    result = _run(
        [
            config.FFPROBE,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_streams",
            str(mp4_path),
        ],
        mp4_path,
        text=True,
    )
    info = json.loads(result.stdout or "{}")
    for s in info.get("streams", []):
        if s.get("codec_tag_string") == "gpmd":
            return int(s["index"])
    raise InvalidContainer(f"{mp4_path} has no GPMF data")


def _probe_packets(mp4_path: pathlib.Path, stream_idx: int) -> list[dict[str, Any]]:
    result = _run(
        [
            config.FFPROBE,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_packets",
            "-select_streams",
            str(stream_idx),
            str(mp4_path),
        ],
        mp4_path,
        text=True,
    )
    return json.loads(result.stdout or "{}").get("packets", [])


def _extract_raw(mp4_path: pathlib.Path, stream_idx: int) -> bytes:
    result = _run(
        [
            config.FFMPEG,
            "-v",
            "quiet",
            "-i",
            str(mp4_path),
            "-map",
            f"0:{stream_idx}",
            "-f",
            "rawvideo",
            "-",
        ],
        mp4_path,
        text=False,
    )
    return result.stdout


# ---------------------------------------------------------------------------
# Payload source
# ---------------------------------------------------------------------------


class FFprobePayloadSource:
    """GPMF payloads of one file, held in memory until :meth:`close`."""

    def __init__(
        self,
        path: pathlib.Path,
        packets: list[dict[str, Any]],
        raw: bytes,
    ):
        self.path = path
        self._packets = packets
        self._offsets: list[int] = []

        offset = 0
        for pmeta in packets:
            self._offsets.append(offset)
            offset += int(pmeta.get("size", 0))
        if offset != len(raw):
            raise CorruptData(
                f"Raw GPMF size mismatch in {path}: expected {offset}, "
                f"got {len(raw)} bytes"
            )
        self._raw: bytes | None = raw

    @classmethod
    def open(cls, path: str | pathlib.Path) -> FFprobePayloadSource:
        mp4_path = pathlib.Path(path)
        if not mp4_path.is_file():
            raise InvalidContainer(f"{mp4_path} does not exist or is not a file")

        stream_idx = _find_gpmf_stream_index(mp4_path)
        logger.debug("Found gpmd metadata on stream index %d", stream_idx)

        t0 = time.monotonic()
        packets = _probe_packets(mp4_path, stream_idx)
        raw = _extract_raw(mp4_path, stream_idx)
        logger.debug(
            "Extracted %d GPMF packets, %.1f KiB (%.2f s)",
            len(packets),
            len(raw) / 1024,
            time.monotonic() - t0,
        )
        source = cls(mp4_path, packets, raw)
        if source.duration() <= 0.0:
            raise NoTimingData(f"{mp4_path} has no GPMF metadata duration")
        return source

    def __enter__(self) -> FFprobePayloadSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._raw = None

    def payload_count(self) -> int:
        return len(self._packets)

    def payload_time_range(self, index: int) -> tuple[float, float]:
        pmeta = self._packets[index]
        try:
            start = float(pmeta["pts_time"])
            duration = float(pmeta["duration_time"])
        except (KeyError, TypeError, ValueError) as exc:
            raise NoTimingData(
                f"Payload {index} of {self.path} has no usable timing"
            ) from exc
        if duration <= 0.0:
            raise NoTimingData(
                f"Payload {index} of {self.path} has non-positive duration {duration}"
            )
        return start, start + duration

    def payload(self, index: int) -> bytes:
        if self._raw is None:
            raise ValueError(f"Payload source for {self.path} is closed")
        offset = self._offsets[index]
        return self._raw[offset : offset + int(self._packets[index]["size"])]

    def duration(self) -> float:
        """Finish time of the last payload, 0.0 when there are none."""
        if not self._packets:
            return 0.0
        return self.payload_time_range(len(self._packets) - 1)[1]


def open_payload_source(path: str | pathlib.Path) -> FFprobePayloadSource:
    return FFprobePayloadSource.open(path)
