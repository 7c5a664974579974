"""
GPMF payload decoding.

A GPMF payload is a tree of KLV items.  Each item starts with an 8-byte
header:

| Bytes | Meaning |
|-------|---------|
| 0-3 | FourCC key, e.g. ``DEVC``, ``STRM``, ``GPS5`` |
| 4 | type character (``\\0`` = nested container) |
| 5 | struct size: bytes per sample |
| 6-7 | repeat: number of samples (big endian) |

followed by ``struct size * repeat`` bytes of data padded to a 32-bit
boundary.  Inside a ``STRM`` container, sticky modifier items (``SCAL``,
``TYPE``) apply to the data items that follow them.

``GPS9`` uses the complex type ``?`` whose layout comes from the ``TYPE``
modifier, e.g. ``"lllllllSS"``.
"""

from __future__ import annotations

import logging
import struct
from typing import Iterable, Iterator, NamedTuple, Protocol

import numpy as np

from gopro_gps.errors import CorruptData, UnknownType
from gopro_gps.telemetry_data import DecodedBlock, SchemaKey

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# GPMF binary type → Python struct format character
# ---------------------------------------------------------------------------
_TYPE_FMT: dict[str, str] = {
    "b": "b",
    "B": "B",
    "s": "h",
    "S": "H",
    "l": "i",
    "L": "I",
    "j": "q",
    "J": "Q",
    "f": "f",
    "d": "d",
    "q": "i",  # Q15.16 fixed point
    "Q": "q",  # Q31.32 fixed point
}

# Fixed-point types are stored as integers and divided by these
_FIXED_POINT: dict[str, float] = {
    "q": float(1 << 16),
    "Q": float(1 << 32),
}

# Types decoded as one string per sample
_TEXT_TYPES = {"c", "U"}

_NESTED = "\x00"
_COMPLEX = "?"

# Keys whose values SCAL applies to; side-channel keys are used as stored
_SCALED_KEYS = {SchemaKey.GPS5, SchemaKey.GPS9}

DEFAULT_KEYS: frozenset[str] = frozenset(SchemaKey)


class _RawItem(NamedTuple):
    """An undecoded leaf item, held until a wanted item needs it."""

    type_char: str
    sample_size: int
    repeat: int
    data: bytes


class StreamDecoder(Protocol):
    def decode_blocks(self, payload: bytes) -> Iterator[DecodedBlock]: ...


# ---------------------------------------------------------------------------
# TYPE modifier
# ---------------------------------------------------------------------------


def expand_type_string(spec: str) -> str:
    """Expand a GPMF ``TYPE`` string, resolving ``[n]`` array counts.

    ``"f[3]L"`` becomes ``"fffL"``.
    """
    out: list[str] = []
    pos = 0
    while pos < len(spec):
        ch = spec[pos]
        if ch == "[":
            end = spec.find("]", pos)
            if end < 0 or not out:
                raise CorruptData(f"Malformed TYPE string: {spec!r}")
            count = spec[pos + 1 : end]
            if not count.isdigit():
                raise CorruptData(f"Malformed TYPE string: {spec!r}")
            out.extend(out[-1] * (int(count) - 1))
            pos = end + 1
            continue
        if ch not in _TYPE_FMT:
            raise UnknownType(f"Unknown GPMF type {ch!r} in TYPE {spec!r}")
        out.append(ch)
        pos += 1
    return "".join(out)


# ---------------------------------------------------------------------------
# Value unpacking
# ---------------------------------------------------------------------------


def _unpack_values(
    key: str, type_chars: str, sample_size: int, repeat: int, data: bytes
) -> np.ndarray:
    """Unpack a leaf KLV item into an array of shape ``(repeat, elements)``.

    *type_chars* is either a single GPMF type repeated across the struct, or
    the expanded complex layout of one sample.
    """
    if len(type_chars) == 1:
        elem_size = struct.calcsize(">" + _TYPE_FMT[type_chars])
        if sample_size % elem_size:
            raise CorruptData(
                f"{key}: struct size {sample_size} is not a multiple of "
                f"{elem_size}-byte type {type_chars!r}"
            )
        type_chars = type_chars * (sample_size // elem_size)

    fmt = ">" + "".join(_TYPE_FMT[c] for c in type_chars)
    if struct.calcsize(fmt) != sample_size:
        raise CorruptData(
            f"{key}: layout {type_chars!r} does not match struct size {sample_size}"
        )

    elements = len(type_chars)
    flat = struct.unpack(">" + fmt[1:] * repeat, data[: sample_size * repeat])
    arr = np.array(flat, dtype=np.float64).reshape(repeat, elements)

    divisors = np.array([_FIXED_POINT.get(c, 1.0) for c in type_chars])
    if np.any(divisors != 1.0):
        arr = arr / divisors[np.newaxis, :]
    return arr


def _decode_strings(data: bytes, sample_size: int, repeat: int) -> tuple[str, ...]:
    return tuple(
        data[i * sample_size : (i + 1) * sample_size]
        .decode("latin1", errors="replace")
        .rstrip("\x00")
        for i in range(repeat)
    )


def _apply_scal(key: str, values: np.ndarray, scal: np.ndarray | None) -> np.ndarray:
    """Divide *values* by *scal*, broadcasting along the element axis.

    Zero divisors leave the matching element unscaled.
    """
    if scal is None or scal.size == 0:
        return values
    if scal.size != 1 and scal.size != values.shape[1]:
        raise CorruptData(
            f"{key}: SCAL has {scal.size} entries for {values.shape[1]} elements"
        )
    divisors = np.where(scal == 0, 1.0, scal)
    if divisors.size == 1:
        return values / divisors[0]
    return values / divisors[np.newaxis, :]


# ---------------------------------------------------------------------------
# KLV walker
# ---------------------------------------------------------------------------


class GpmfStreamDecoder:
    """Walks GPMF payloads and yields the wanted leaf items lazily."""

    def __init__(self, keys: Iterable[str] = DEFAULT_KEYS):
        self.keys = frozenset(keys)

    def decode_blocks(self, payload: bytes) -> Iterator[DecodedBlock]:
        yield from self._walk(payload, depth=0)

    def _walk(self, data: bytes, depth: int) -> Iterator[DecodedBlock]:
        # Modifiers are sticky within the enclosing container only, and stay
        # undecoded until a wanted item uses them (SCEN has TYPE "Ff")
        scal: _RawItem | None = None
        type_spec: str | None = None

        pos = 0
        length = len(data)
        while pos < length:
            if pos + 8 > length:
                if any(data[pos:]):
                    raise CorruptData(
                        f"Truncated KLV header at offset {pos} (depth {depth})"
                    )
                break

            raw_key = data[pos : pos + 4]
            if raw_key == b"\x00\x00\x00\x00":
                break  # zero padding ends the container
            key = raw_key.decode("latin1", errors="replace")
            type_char = chr(data[pos + 4])
            sample_size = data[pos + 5]
            repeat = struct.unpack(">H", data[pos + 6 : pos + 8])[0]

            data_len = sample_size * repeat
            if pos + 8 + data_len > length:
                raise CorruptData(
                    f"{key} item ({data_len} bytes) overruns its container "
                    f"at offset {pos} (depth {depth})"
                )
            item = data[pos + 8 : pos + 8 + data_len]
            total = 8 + data_len
            pos += total + (4 - (total % 4)) % 4

            if type_char == _NESTED:
                yield from self._walk(item, depth + 1)
                continue

            if key == "SCAL":
                scal = _RawItem(type_char, sample_size, repeat, item)
                continue
            if key == "TYPE":
                type_spec = item.decode("latin1", errors="replace").rstrip("\x00")
                continue

            if key not in self.keys:
                continue
            if repeat == 0 or sample_size == 0:
                logger.debug("Skipping empty %s item", key)
                continue

            yield self._decode_item(
                key, type_char, sample_size, repeat, item, scal, type_spec
            )

    def _decode_scal(self, scal: _RawItem) -> np.ndarray:
        if scal.type_char not in _TYPE_FMT:
            raise UnknownType(f"Unknown GPMF type {scal.type_char!r} for SCAL")
        return _unpack_values(
            "SCAL", scal.type_char, scal.sample_size, scal.repeat, scal.data
        ).flatten()

    def _decode_item(
        self,
        key: str,
        type_char: str,
        sample_size: int,
        repeat: int,
        item: bytes,
        scal: _RawItem | None,
        type_spec: str | None,
    ) -> DecodedBlock:
        if type_char in _TEXT_TYPES:
            return DecodedBlock(
                key=key,
                samples=repeat,
                elements=0,
                values=np.empty((repeat, 0)),
                text=_decode_strings(item, sample_size, repeat),
            )

        if type_char == _COMPLEX:
            if type_spec is None:
                raise CorruptData(f"{key} uses a complex type without TYPE")
            layout = expand_type_string(type_spec)
        elif type_char in _TYPE_FMT:
            layout = type_char
        else:
            raise UnknownType(f"Unknown GPMF type {type_char!r} for {key}")

        values = _unpack_values(key, layout, sample_size, repeat, item)
        if key in _SCALED_KEYS and scal is not None:
            values = _apply_scal(key, values, self._decode_scal(scal))
        return DecodedBlock(
            key=key,
            samples=values.shape[0],
            elements=values.shape[1],
            values=values,
        )
