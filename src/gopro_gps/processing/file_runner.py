"""Per-file orchestration of payload decoding and sample dispatch."""

from __future__ import annotations

import logging
import pathlib
import time
from typing import Callable, Iterable

from gopro_gps.errors import NoTimingData
from gopro_gps.processing.filter_policy import FilterPolicy
from gopro_gps.processing.payload_source import PayloadSource, open_payload_source
from gopro_gps.processing.record_emitter import RecordEmitter
from gopro_gps.processing.sample_dispatcher import SampleDispatcher
from gopro_gps.processing.stream_decoder import GpmfStreamDecoder, StreamDecoder
from gopro_gps.telemetry_data import FileSummary, PayloadTiming

logger = logging.getLogger(__name__)

SourceFactory = Callable[[pathlib.Path], PayloadSource]


class FileRunner:
    """Runs input files strictly in order, one payload at a time.

    ``file_time_base`` accumulates the end time of every finished file so
    that ``cts`` keeps increasing across a multi-file run.  Any error aborts
    the run; the source of the failing file is still closed.
    """

    def __init__(
        self,
        emitter: RecordEmitter,
        policy: FilterPolicy,
        source_factory: SourceFactory = open_payload_source,
        decoder: StreamDecoder | None = None,
    ):
        self.emitter = emitter
        self.policy = policy
        self.source_factory = source_factory
        self.decoder = decoder if decoder is not None else GpmfStreamDecoder()
        self.file_time_base = 0.0
        self.summaries: list[FileSummary] = []

    def run(self, paths: Iterable[str | pathlib.Path]) -> list[FileSummary]:
        for path in paths:
            self.run_file(pathlib.Path(path))
        return self.summaries

    def run_file(self, path: pathlib.Path) -> FileSummary:
        logger.info("Extracting GPS telemetry from %s", path.name)
        t0 = time.monotonic()

        dispatcher = SampleDispatcher(
            self.emitter,
            self.policy,
            identity=self.emitter.identity.label(path),
        )
        time_base = self.file_time_base
        end_time = 0.0
        payloads = 0

        with self.source_factory(path) as source:
            self.emitter.write_header()
            for index in range(source.payload_count()):
                start, finish = source.payload_time_range(index)
                if finish <= start:
                    raise NoTimingData(
                        f"Payload {index} of {path} has an empty time range "
                        f"[{start}, {finish})"
                    )
                timing = PayloadTiming(index=index, start=start, finish=finish)

                blocks = self.decoder.decode_blocks(source.payload(index))
                if index == 0:
                    blocks = list(blocks)
                    dispatcher.detect_generation(blocks)
                dispatcher.dispatch_payload(blocks, timing, time_base)

                logger.debug(
                    "Payload %d: [%.3f, %.3f) s, %d rows so far",
                    index,
                    start,
                    finish,
                    dispatcher.rows_emitted,
                )
                end_time = finish
                payloads += 1

        self.file_time_base += end_time

        summary = FileSummary(
            path=path,
            payloads=payloads,
            rows_emitted=dispatcher.rows_emitted,
            rows_dropped=dispatcher.rows_dropped,
            generation=dispatcher.generation,
            end_time_s=end_time,
            time_base_s=time_base,
            gps_start_utc=dispatcher.gps_start_utc,
            fix_counts=dict(dispatcher.fix_counts),
        )
        self.summaries.append(summary)

        logger.info(
            "%s: %d payloads (%.1f s, %s), %d rows written, %d filtered (%.2f s)",
            path.name,
            payloads,
            end_time,
            summary.generation,
            summary.rows_emitted,
            summary.rows_dropped,
            time.monotonic() - t0,
        )
        if summary.gps_start_utc is not None:
            logger.info("  GPS start (UTC):  %s", summary.gps_start_utc.isoformat())
        if summary.fix_counts:
            logger.info(
                "  GPS fix: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(summary.fix_counts.items())),
            )
        return summary
