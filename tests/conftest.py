"""
Pytest configuration and fixtures for the GPS telemetry tests.

Provides block builders, a GPMF KLV byte builder, and in-memory stand-ins
for the payload source and stream decoder so that no MP4 files or ffmpeg
binaries are needed.
"""

import io
import struct
from dataclasses import dataclass, field

import numpy as np
import pytest

from gopro_gps.errors import InvalidContainer
from gopro_gps.processing.filter_policy import FilterPolicy
from gopro_gps.processing.record_emitter import IdentityColumn, RecordEmitter
from gopro_gps.telemetry_data import DecodedBlock, FilterThresholds


# ============================================================================
# Block builders
# ============================================================================


def make_block(key, rows):
    """Numeric DecodedBlock from a list of per-sample rows."""
    values = np.array(rows, dtype=np.float64)
    if values.ndim == 1:
        values = values.reshape(-1, 1)
    return DecodedBlock(
        key=key, samples=values.shape[0], elements=values.shape[1], values=values
    )


def gpsu_block(text):
    return DecodedBlock(
        key="GPSU", samples=1, elements=0, values=np.empty((1, 0)), text=(text,)
    )


def gps5_rows(count, lat=52.27, lon=20.91, alt=100.0):
    return [[lat + i * 1e-5, lon + i * 1e-5, alt + i, 5.0 + i, 5.5 + i] for i in range(count)]


def gps9_rows(count, days=7836, secs=45296.25, fix=3, precision=150):
    return [
        [52.27 + i * 1e-5, 20.91, 100.0, 5.0, 5.5, days, secs + i * 0.1, precision, fix]
        for i in range(count)
    ]


# ============================================================================
# GPMF KLV builder
# ============================================================================


def klv(key, type_char, struct_size, repeat, data=b""):
    """One GPMF item, padded to 32 bits."""
    header = key.encode("latin1") + type_char.encode("latin1")
    header += struct.pack(">BH", struct_size, repeat)
    item = header + data
    return item + b"\x00" * ((4 - len(item) % 4) % 4)


def nest(key, *children):
    body = b"".join(children)
    return klv(key, "\x00", 1, len(body), body)


def pack_samples(fmt, rows):
    """Big-endian pack *rows* with one struct *fmt* per sample."""
    return b"".join(struct.pack(">" + fmt, *row) for row in rows)


# ============================================================================
# In-memory payload source
# ============================================================================


@dataclass
class FakePayload:
    start: float
    finish: float
    blocks: list = field(default_factory=list)


class StubPayloadSource:
    """PayloadSource over a list of :class:`FakePayload`."""

    def __init__(self, path, payloads):
        self.path = str(path)
        self.payloads = payloads
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.closed = True

    def payload_count(self):
        return len(self.payloads)

    def payload_time_range(self, index):
        p = self.payloads[index]
        return p.start, p.finish

    def payload(self, index):
        return f"{self.path}#{index}".encode()


class StubDecoder:
    """Returns the blocks registered for a ``path#index`` payload token."""

    def __init__(self, files):
        self.files = files

    def decode_blocks(self, payload):
        path, _, index = payload.decode().rpartition("#")
        yield from self.files[path][int(index)].blocks


class FakeFiles:
    """Registry of fake input files plus the factory and decoder serving them."""

    def __init__(self):
        self.files = {}
        self.opened = []

    def add(self, path, *payloads):
        self.files[str(path)] = list(payloads)
        return str(path)

    def open(self, path):
        if str(path) not in self.files:
            raise InvalidContainer(f"{path} has no GPMF data")
        source = StubPayloadSource(path, self.files[str(path)])
        self.opened.append(source)
        return source

    @property
    def decoder(self):
        return StubDecoder(self.files)


@pytest.fixture
def fake_files():
    return FakeFiles()


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def emitter(output):
    return RecordEmitter(output, IdentityColumn.NONE)


@pytest.fixture
def open_policy():
    return FilterPolicy(FilterThresholds())


def data_rows(text):
    """Split emitted output into header and a list of split data rows."""
    lines = text.splitlines()
    return lines[0], [line.split(", ") for line in lines[1:]]
