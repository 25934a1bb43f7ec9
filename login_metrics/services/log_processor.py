"""Streaming ingestion pipeline for newline-delimited JSON login logs.

    bytes -> lines -> batches of lines -> batches of events -> engine

Sources far larger than memory are read in fixed-size chunks. Lines are
reassembled across chunk boundaries, grouped into batches, decoded, and
each decoded batch is handed to the aggregation engine on a worker
thread. At most `max_concurrent` batches are in flight at a time; the
reader only waits when every slot is taken.
"""

import asyncio
import os
import time
from collections.abc import AsyncIterator, Iterable
from contextlib import aclosing
from dataclasses import dataclass
from typing import BinaryIO

from login_metrics.core import metrics
from login_metrics.core.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_READ_CHUNK_SIZE,
    MAX_CONCURRENT_BATCHES,
)
from login_metrics.core.exceptions import MalformedRecord, SourceUnavailable
from login_metrics.core.logging import get_logger
from login_metrics.models.event import LogEvent, ProcessingResult
from login_metrics.services.metrics_engine import MetricsEngine, round_half_up

logger = get_logger(__name__)

Source = str | os.PathLike | BinaryIO


def describe_source(source: Source) -> str:
    if hasattr(source, "read"):
        return getattr(source, "name", None) or type(source).__name__
    return os.fspath(source)


async def read_chunks(source: Source, chunk_size: int = DEFAULT_READ_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield byte chunks from a path or an open binary stream.

    Paths are opened and closed here; streams are left open for the caller.
    Reads happen on a worker thread so the event loop stays free.
    """
    name = describe_source(source)
    if hasattr(source, "read"):
        stream, owned = source, False
    else:
        try:
            stream, owned = open(source, "rb"), True
        except OSError as e:
            raise SourceUnavailable(name, e.strerror or str(e)) from e

    try:
        while True:
            try:
                chunk = await asyncio.to_thread(stream.read, chunk_size)
            except OSError as e:
                raise SourceUnavailable(name, e.strerror or str(e)) from e
            if not chunk:
                break
            yield chunk
    finally:
        if owned:
            stream.close()


class LineFramer:
    """Reassembles newline-terminated lines from arbitrary byte chunks."""

    def __init__(self) -> None:
        self._carry = b""

    def feed(self, chunk: bytes) -> list[bytes]:
        """Return the complete, non-blank lines finished by this chunk."""
        lines = (self._carry + chunk).split(b"\n")
        self._carry = lines.pop()
        return [line for line in lines if line.strip()]

    def flush(self) -> list[bytes]:
        """Return the unterminated tail, if it holds anything."""
        tail, self._carry = self._carry, b""
        return [tail] if tail.strip() else []


class Batcher:
    """Groups lines into lists of `batch_size`."""

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.batch_size = batch_size
        self._pending: list[bytes] = []

    def add(self, lines: Iterable[bytes]) -> list[list[bytes]]:
        """Add lines and return every batch that became full."""
        full = []
        for line in lines:
            self._pending.append(line)
            if len(self._pending) >= self.batch_size:
                full.append(self._pending)
                self._pending = []
        return full

    def flush(self) -> list[bytes] | None:
        """Return the final partial batch, if any lines are left."""
        if not self._pending:
            return None
        batch, self._pending = self._pending, []
        return batch


def decode_line(line: bytes | str) -> LogEvent:
    """Decode one JSON line into a LogEvent."""
    try:
        return LogEvent.model_validate_json(line)
    except ValueError as e:
        # pydantic's ValidationError is a ValueError; so is bad UTF-8
        raise MalformedRecord(str(e)) from e


@dataclass
class ParsedBatch:
    events: list[LogEvent]
    error_count: int  # cumulative over the whole run


class BatchParser:
    """Decodes batches of lines, counting lines that fail."""

    def __init__(self) -> None:
        self.error_count = 0

    def parse(self, lines: Iterable[bytes]) -> ParsedBatch | None:
        """Decode a batch. Returns None when no line decoded."""
        events = []
        errors = 0
        for line in lines:
            try:
                events.append(decode_line(line))
            except MalformedRecord:
                errors += 1

        self.error_count += errors
        metrics.lines_parsed_total.inc(len(events))
        if errors:
            metrics.lines_malformed_total.inc(errors)

        if not events:
            return None
        return ParsedBatch(events=events, error_count=self.error_count)


def _raise_first_failure(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()


class LogProcessor:
    """Runs the ingestion pipeline into a MetricsEngine."""

    def __init__(
        self,
        engine: MetricsEngine,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrent: int = MAX_CONCURRENT_BATCHES,
        chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
        progress_interval: int = 100_000,
    ):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be positive, got {max_concurrent}")
        self.engine = engine
        self.batch_size = batch_size
        self.max_concurrent = max_concurrent
        self.chunk_size = chunk_size
        self.progress_interval = progress_interval

    async def process_source(self, source: Source, batch_size: int | None = None) -> ProcessingResult:
        """
        Stream a source through the pipeline into the engine.

        Args:
            source: Path of a log file, or an open binary stream
            batch_size: Lines per batch, defaults to the processor's

        Returns:
            ProcessingResult with counts and throughput

        Raises:
            SourceUnavailable: The source could not be opened or read
        """
        source_name = describe_source(source)
        start_time = time.perf_counter()

        framer = LineFramer()
        batcher = Batcher(self.batch_size if batch_size is None else batch_size)
        parser = BatchParser()
        slots = asyncio.Semaphore(self.max_concurrent)
        tasks: list[asyncio.Task] = []
        processed = 0
        next_progress = self.progress_interval

        logger.info(
            "Starting to process source",
            source=source_name,
            batch_size=batcher.batch_size,
            **self._size_info(source),
        )

        async def ingest(events: list[LogEvent]) -> None:
            nonlocal processed, next_progress
            metrics.batches_in_flight.inc()
            try:
                with metrics.batch_ingest_duration_seconds.time():
                    await asyncio.to_thread(self.engine.ingest_batch, events)
            finally:
                metrics.batches_in_flight.dec()
                slots.release()

            processed += len(events)
            if processed >= next_progress:
                elapsed = time.perf_counter() - start_time
                logger.info(
                    "Processing progress",
                    processed=processed,
                    logs_per_second=int(round_half_up(processed / elapsed)) if elapsed > 0 else 0,
                )
                next_progress = (processed // self.progress_interval + 1) * self.progress_interval

        async def dispatch(lines: list[bytes]) -> None:
            parsed = await asyncio.to_thread(parser.parse, lines)
            if parsed is None:
                return
            _raise_first_failure(tasks)
            await slots.acquire()
            tasks.append(asyncio.create_task(ingest(parsed.events)))

        try:
            async with aclosing(read_chunks(source, self.chunk_size)) as chunks:
                async for chunk in chunks:
                    for batch in batcher.add(framer.feed(chunk)):
                        await dispatch(batch)

            for batch in batcher.add(framer.flush()):
                await dispatch(batch)
            final = batcher.flush()
            if final:
                await dispatch(final)

            if tasks:
                # wait() leaves the tasks running if this run is cancelled
                await asyncio.wait(tasks)
                _raise_first_failure(tasks)

        except BaseException as e:
            # Let batches already handed to the engine finish before failing
            await asyncio.gather(*tasks, return_exceptions=True)
            metrics.pipeline_runs_total.labels(outcome="failed").inc()
            logger.error("Processing failed", source=source_name, error=str(e) or type(e).__name__)
            raise

        time_elapsed = time.perf_counter() - start_time
        logs_per_second = int(round_half_up(processed / time_elapsed)) if time_elapsed > 0 else 0
        metrics.pipeline_runs_total.labels(outcome="completed").inc()

        logger.info(
            "Processing completed",
            source=source_name,
            total_processed=processed,
            errors=parser.error_count,
            time_elapsed_seconds=round(time_elapsed, 2),
            logs_per_second=logs_per_second,
        )

        return ProcessingResult(
            total_processed=processed,
            time_elapsed_seconds=time_elapsed,
            errors=parser.error_count,
            logs_per_second=logs_per_second,
        )

    @staticmethod
    def _size_info(source: Source) -> dict[str, str]:
        if hasattr(source, "read"):
            return {}
        try:
            size = os.stat(source).st_size
        except OSError:
            # open() reports the problem properly
            return {}
        return {"file_size_mb": f"{size / 1024 / 1024:.2f}"}
