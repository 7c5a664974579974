"""Route decoded GPMF blocks to the clock, the fix state and the output.

One dispatcher lives for exactly one input file.  It owns the reconstructed
clock, the Legacy fix/precision carry state and the schema generation, and
expects blocks in stream order: the timestamps it produces depend entirely on
samples being visited in their original order.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Iterable, Sequence

import numpy as np

from gopro_gps.errors import CorruptData
from gopro_gps.processing.clock import ClockState, gps9_epoch_seconds, parse_gpsu
from gopro_gps.processing.filter_policy import FilterPolicy
from gopro_gps.processing.record_emitter import RecordEmitter
from gopro_gps.telemetry_data import (
    DecodedBlock,
    PayloadTiming,
    RunningFixState,
    SchemaGeneration,
    SchemaKey,
)

logger = logging.getLogger(__name__)

# GPS5: lat, lon, alt, 2D speed, 3D speed
GPS5_ELEMENTS = 5

# GPS9 element layout
GPS9_ELEMENTS = 9
GPS9_FIELD_INDEXES = (0, 1, 2, 3, 4)
GPS9_DAYS = 5
GPS9_SECONDS = 6
GPS9_PRECISION = 7
GPS9_FIX = 8


class SampleDispatcher:
    def __init__(
        self,
        emitter: RecordEmitter,
        policy: FilterPolicy,
        identity: str | None = None,
        fix_state: RunningFixState | None = None,
        clock: ClockState | None = None,
    ):
        self.emitter = emitter
        self.policy = policy
        self.identity = identity
        self.fix_state = fix_state if fix_state is not None else RunningFixState()
        self.clock = clock if clock is not None else ClockState()
        self.generation = SchemaGeneration.LEGACY

        self.rows_emitted = 0
        self.rows_dropped = 0
        self.fix_counts: Counter[int] = Counter()
        self.gps_start_utc: datetime | None = None

        self._timing: PayloadTiming | None = None
        self._time_base = 0.0
        self._payloads_seen = 0
        self._seeded = False

    # ------------------------------------------------------------------
    # Payload-level entry points
    # ------------------------------------------------------------------

    def detect_generation(self, blocks: Sequence[DecodedBlock]) -> SchemaGeneration:
        """Switch to Consolidated up front if *blocks* contain any GPS9 data.

        Cameras that write both GPS5 and GPS9 would otherwise emit the
        first payload's GPS5 rows before the GPS9 block is reached.
        """
        if any(block.key == SchemaKey.GPS9 for block in blocks):
            self._set_generation(SchemaGeneration.CONSOLIDATED)
        return self.generation

    def dispatch_payload(
        self,
        blocks: Iterable[DecodedBlock],
        timing: PayloadTiming,
        time_base: float = 0.0,
    ) -> None:
        """Process every block of one payload, in stream order."""
        self._timing = timing
        self._time_base = time_base
        for block in blocks:
            self.dispatch(block)
        self._payloads_seen += 1

    def dispatch(self, block: DecodedBlock) -> None:
        if block.samples == 0:
            return

        match block.key:
            case SchemaKey.GPSU:
                self._on_clock_sync(block)
            case SchemaKey.GPSF:
                self.fix_state.fix = int(_first_value(block))
            case SchemaKey.GPSP:
                self.fix_state.precision = int(_first_value(block))
            case SchemaKey.GPS5:
                if self.generation is SchemaGeneration.LEGACY:
                    self._on_gps5(block)
            case SchemaKey.GPS9:
                self._set_generation(SchemaGeneration.CONSOLIDATED)
                self._on_gps9(block)
            case _:
                logger.debug("Ignoring %s block", block.key)

    # ------------------------------------------------------------------
    # Block handlers
    # ------------------------------------------------------------------

    def _on_clock_sync(self, block: DecodedBlock) -> None:
        if not block.text:
            raise CorruptData(f"{block.key} block carries no timestamp string")
        epoch, millis = parse_gpsu(block.text[0])
        self.clock.set_from_sync(epoch, millis)
        self._note_gps_start()

    def _on_gps5(self, block: DecodedBlock) -> None:
        _require_elements(block, GPS5_ELEMENTS)
        step_s = self._payload_timing().step(block.samples)
        fix = self.fix_state.fix
        precision = self.fix_state.precision
        for i, sample in enumerate(block.values):
            self._process_sample(i, step_s, sample[:GPS5_ELEMENTS], fix, precision)

    def _on_gps9(self, block: DecodedBlock) -> None:
        _require_elements(block, GPS9_ELEMENTS)
        step_s = self._payload_timing().step(block.samples)
        for i, sample in enumerate(block.values):
            if i == 0 and self._payloads_seen == 0 and not self._seeded:
                epoch, millis = gps9_epoch_seconds(
                    sample[GPS9_DAYS], sample[GPS9_SECONDS]
                )
                self.clock.set_from_sync(epoch, millis)
                self._seeded = True
                self._note_gps_start()
            self._process_sample(
                i,
                step_s,
                sample[list(GPS9_FIELD_INDEXES)],
                int(sample[GPS9_FIX]),
                int(sample[GPS9_PRECISION]),
            )

    def _process_sample(
        self,
        index: int,
        step_s: float,
        fields: np.ndarray,
        fix: int,
        precision: int,
    ) -> None:
        """Emit one sample if it passes the filter, then advance the clock.

        The clock advances for dropped samples too: it tracks elapsed time,
        not emitted rows.
        """
        if self.policy.passes(fix, precision):
            timing = self._payload_timing()
            cts_millis = (self._time_base + timing.start + index * step_s) * 1000.0
            self.emitter.emit(
                self.identity,
                cts_millis,
                self.clock.iso_format(),
                fields.tolist(),
                fix,
                precision,
            )
            self.rows_emitted += 1
            self.fix_counts[fix] += 1
        else:
            self.rows_dropped += 1
        self.clock.advance(step_s * 1000.0)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _payload_timing(self) -> PayloadTiming:
        if self._timing is None:
            raise RuntimeError("dispatch() called outside of dispatch_payload()")
        return self._timing

    def _set_generation(self, generation: SchemaGeneration) -> None:
        if generation is not self.generation:
            logger.debug("Schema generation: %s -> %s", self.generation, generation)
            self.generation = generation

    def _note_gps_start(self) -> None:
        if self.gps_start_utc is None:
            self.gps_start_utc = self.clock.timestamp


def _first_value(block: DecodedBlock) -> float:
    if block.elements == 0:
        raise CorruptData(f"{block.key} block carries no numeric value")
    return float(block.values[0, 0])


def _require_elements(block: DecodedBlock, count: int) -> None:
    if block.elements < count:
        raise CorruptData(
            f"{block.key} samples have {block.elements} elements, expected {count}"
        )
